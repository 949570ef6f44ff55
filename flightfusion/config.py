"""YAML configuration loader with dataclass mapping."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class FusionConfig:
    camera_fov: float = 84.0          # horizontal FOV, degrees
    duration_tolerance_ms: float = 100.0
    strict_duration: bool = False     # abort on segment/video duration mismatch
    max_workers: int = 4              # videos fused in parallel
    progress_interval: int = 100      # frames between progress log lines


@dataclass
class StorageConfig:
    db_path: str = "data/db/flights.db"
    upload_dir: str = "data/uploads"
    log_dir: str = "data/logs"


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class AppConfig:
    fusion: FusionConfig = field(default_factory=FusionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    web: WebConfig = field(default_factory=WebConfig)


def _apply_dict(dc: object, data: dict) -> None:
    """Apply dictionary values onto a dataclass instance, ignoring unknown keys."""
    for key, value in data.items():
        if hasattr(dc, key):
            setattr(dc, key, value)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a YAML file, falling back to defaults."""
    config = AppConfig()

    if path is None:
        path = os.environ.get("CONFIG_PATH", "config/default.yaml")

    path = Path(path)
    if path.exists():
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}

        section_map = {
            "fusion": config.fusion,
            "storage": config.storage,
            "web": config.web,
        }

        for section_name, dc_instance in section_map.items():
            if section_name in raw and isinstance(raw[section_name], dict):
                _apply_dict(dc_instance, raw[section_name])

    # Environment variable overrides
    env_db = os.environ.get("DATABASE_PATH")
    if env_db:
        config.storage.db_path = env_db

    env_uploads = os.environ.get("UPLOAD_DIR")
    if env_uploads:
        config.storage.upload_dir = env_uploads

    env_fov = os.environ.get("CAMERA_FOV")
    if env_fov:
        config.fusion.camera_fov = float(env_fov)

    env_host = os.environ.get("WEB_HOST")
    if env_host:
        config.web.host = env_host

    env_port = os.environ.get("WEB_PORT")
    if env_port:
        config.web.port = int(env_port)

    return config
