"""
Application settings loaded from YAML.

Every section is optional; missing keys fall back to the dataclass defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger

from generation.adapter import DEFAULT_ANALYSIS_MODEL, DEFAULT_BASE_URL, DEFAULT_TWIN_MODEL

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "main_config.yaml"

API_KEY_ENV = "GEMINI_API_KEY"


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 5000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class StoreConfig:
    seed_sample_data: bool = True
    default_user_id: int = 1


@dataclass
class RealtimeConfig:
    path: str = "/ws"
    broadcast_interval_s: float = 5.0
    device_ids: List[int] = field(default_factory=lambda: [1, 2, 3, 4])
    value_min: float = 0.0
    value_max: float = 100.0


@dataclass
class GenerationConfig:
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    twin_model: str = DEFAULT_TWIN_MODEL
    analysis_model: str = DEFAULT_ANALYSIS_MODEL
    timeout_s: float = 120.0


@dataclass
class UploadConfig:
    max_bytes: int = 50 * 1024 * 1024


@dataclass
class Settings:
    """Top-level settings object handed to ``create_app``."""
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Settings":
        raw = raw or {}
        return cls(
            server=ServerConfig(**raw.get("server", {})),
            store=StoreConfig(**raw.get("store", {})),
            realtime=RealtimeConfig(**raw.get("realtime", {})),
            generation=GenerationConfig(**raw.get("generation", {})),
            upload=UploadConfig(**raw.get("upload", {})),
        )


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """
    Load settings from a YAML file.

    The ``GEMINI_API_KEY`` environment variable overrides the configured key.

    Args:
        config_path: YAML file (defaults to config/main_config.yaml)
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if path.exists():
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
        logger.info(f"Configuration loaded from {path}")
    else:
        logger.warning(f"Config file not found: {path}")
        raw = {}

    settings = Settings.from_dict(raw)

    env_key = os.environ.get(API_KEY_ENV)
    if env_key:
        settings.generation.api_key = env_key
    if not settings.generation.api_key:
        logger.warning(f"{API_KEY_ENV} not set; generation requests will be rejected upstream")

    return settings
