"""
Digital Twin Platform - Main Application Entry Point
=====================================================
Starts the REST/WebSocket server backing the digital twin dashboard.

Wires the subsystems together at process start:
- Entity store (in-memory, optionally seeded with demo data)
- Generation adapter (hosted Gemini model)
- Realtime broadcast channel (/ws)
- FastAPI application served by uvicorn
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

import uvicorn
from loguru import logger

# Add src to path for imports
SRC_DIR = Path(__file__).parent
PROJECT_ROOT = SRC_DIR.parent
sys.path.insert(0, str(SRC_DIR))

from entity_store import EntityStore, seed_sample_data
from generation import GenerationService
from webapp import Settings, create_app, load_settings


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    logger.remove()  # Remove default handler

    level = "DEBUG" if verbose else "INFO"

    # Console handler with custom format
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=level,
        colorize=True
    )

    # File handler for debug logs
    log_dir = PROJECT_ROOT / "logs"
    log_dir.mkdir(exist_ok=True)

    logger.add(
        log_dir / "twin_platform_{time}.log",
        rotation="10 MB",
        retention="7 days",
        level="DEBUG"
    )


def build_application(settings: Settings, seed: Optional[bool] = None):
    """
    Create the store and adapter, and hand them to the app factory.

    Args:
        settings: Loaded settings
        seed: Override ``store.seed_sample_data`` when not None
    """
    store = EntityStore()
    should_seed = settings.store.seed_sample_data if seed is None else seed
    if should_seed:
        seed_sample_data(store)

    gen = settings.generation
    generator = GenerationService(
        api_key=gen.api_key,
        base_url=gen.base_url,
        twin_model=gen.twin_model,
        analysis_model=gen.analysis_model,
        timeout_s=gen.timeout_s,
    )

    return create_app(settings, store, generator)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Digital Twin Platform - REST/WebSocket server"
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=None,
        help="Path to configuration file"
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Bind address (overrides config)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Listen port (overrides config)"
    )
    parser.add_argument(
        "--no-seed",
        action="store_true",
        help="Start with an empty store"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    setup_logging(args.verbose)

    settings = load_settings(args.config)
    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port

    app = build_application(settings, seed=False if args.no_seed else None)

    logger.info(f"Serving on {settings.server.host}:{settings.server.port}")
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level="debug" if args.verbose else "info",
    )


if __name__ == "__main__":
    main()
