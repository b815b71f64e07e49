"""Central Loguru configuration for structured logging."""

from __future__ import annotations

import shutil
import sys
import threading

from loguru import logger

from core.config import StreamSettings

# Bytes required to enable file logging (default 50 MB)
MIN_FREE_SPACE = 50 * 1024 * 1024

_lock = threading.Lock()
_sink_ids: list[int] = []


def effective_level(settings: StreamSettings) -> str:
    """Return the sink level, forced to ``DEBUG`` when ffmpeg diagnostics are on."""
    if settings.ffmpeg_debug:
        return "DEBUG"
    return settings.log_level.upper()


def _file_sink_allowed(settings: StreamSettings) -> bool:
    log_dir = settings.log_path.parent
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        free_space = shutil.disk_usage(log_dir).free
    except OSError as exc:
        logger.warning("Cannot prepare log directory {}: {}", log_dir, exc)
        return False
    if free_space < MIN_FREE_SPACE:
        logger.warning(
            "Insufficient disk space for {}; skipping file logging ({:.2f} MB free)",
            settings.log_path,
            free_space / (1024 * 1024),
        )
        return False
    return True


def setup_json_logger(settings: StreamSettings | None = None) -> str:
    """Install JSON sinks for the relay and return the level in use.

    Safe to call again; sinks from a previous call are replaced.
    """
    global _sink_ids
    settings = settings or StreamSettings()
    level = effective_level(settings)
    with _lock:
        try:
            # drop loguru's default stderr handler on first configuration
            logger.remove(0)
        except ValueError:
            pass
        for sink_id in _sink_ids:
            try:
                logger.remove(sink_id)
            except ValueError:
                continue
        _sink_ids = [logger.add(sys.stdout, level=level, enqueue=True, serialize=True)]

    if not settings.log_to_file:
        return level
    if not _file_sink_allowed(settings):
        return level
    with _lock:
        _sink_ids.append(
            logger.add(
                settings.log_path,
                rotation=settings.log_rotation,
                retention=settings.log_retention,
                level=level,
                enqueue=True,
                serialize=True,
            )
        )
    return level


def remove_sinks() -> None:
    """Detach the sinks installed by :func:`setup_json_logger`, flushing them."""
    global _sink_ids
    with _lock:
        for sink_id in _sink_ids:
            try:
                logger.remove(sink_id)
            except ValueError:
                continue
        _sink_ids = []
