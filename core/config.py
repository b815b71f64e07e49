"""Relay configuration loader."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict


class StreamSettings(BaseSettings):
    """Pydantic settings for the stream supervisor and its launcher.

    Every field can be overridden with a ``RELAY_``-prefixed environment
    variable, e.g. ``RELAY_STARTUP_PACING=0.5``.
    """

    model_config = SettingsConfigDict(env_prefix="RELAY_", extra="ignore")

    streams_dir: Path = Path("streams")
    cameras_file: Path = Path("data/cameras.json")
    ffmpeg_bin: str = "ffmpeg"

    # supervisor cadence
    startup_pacing: float = 1.0
    restart_cooldown: float = 5.0

    # HLS output
    hls_time: int = 2
    hls_list_size: int = 5

    # primary (re-encode) profile
    target_width: int = 720
    frame_rate: int = 15
    gop: int = 30
    video_bitrate: str = "2M"
    max_rate: str = "2.2M"
    buffer_size: str = "2M"
    connect_timeout_usec: int = 5_000_000
    prefer_passthrough: bool = False

    # log every ffmpeg stderr line; lowers the log level to DEBUG
    ffmpeg_debug: bool = False

    # logging sinks
    log_level: str = "INFO"
    log_to_file: bool = True
    log_path: Path = Path("logs/relay.log")
    log_rotation: str = "10 MB"
    log_retention: str = "7 days"

    host: str = "0.0.0.0"
    port: int = 3033


def load_settings(path: str | Path | None = None, **overrides: Any) -> StreamSettings:
    """Load settings from environment, optionally overlaid with a JSON file."""

    data: dict[str, Any] = {}
    if path is not None:
        cfg_path = Path(path)
        if cfg_path.exists():
            try:
                data = json.loads(cfg_path.read_text())
            except json.JSONDecodeError:
                logger.warning("Invalid JSON in {}; using defaults", cfg_path)
                data = {}
    data.update(overrides)
    cfg = StreamSettings(**data)
    logger.info(
        "Loaded relay settings (streams_dir={}, pacing={}s, cooldown={}s)",
        cfg.streams_dir,
        cfg.startup_pacing,
        cfg.restart_cooldown,
    )
    return cfg


_SETTINGS: Optional[StreamSettings] = None


def get_settings() -> StreamSettings:
    """Return a shared :class:`StreamSettings` instance."""

    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = load_settings()
    return _SETTINGS


__all__ = ["StreamSettings", "load_settings", "get_settings"]
