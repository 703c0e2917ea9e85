"""
Web Application Package
========================
FastAPI server exposing the REST API and the realtime broadcast channel.
"""

__version__ = "1.0.0"

from .settings import Settings, load_settings  # noqa: E402
from .server import create_app  # noqa: E402

__all__ = [
    "Settings",
    "load_settings",
    "create_app",
]
