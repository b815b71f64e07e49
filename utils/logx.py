"""Lightweight structured logging helpers used across the relay.

Provides convenience wrappers around :mod:`loguru` so modules can emit
structured stream lifecycle events with credentials masked.
"""

from __future__ import annotations

import json
import time
from typing import Any, Dict

from loguru import logger

from .url import mask_credentials

# in-memory state for throttling helpers
_last_times: Dict[str, float] = {}
# upper bound on remembered throttle keys
MAX_THROTTLE_KEYS = 512

# required field map for known events
_REQUIRED: dict[str, list[str]] = {
    "stream_start": ["stream_id", "profile", "url"],
    "stream_exit": ["stream_id", "rc", "retry_count"],
    "stream_launch_failed": ["stream_id", "profile", "error"],
}


def _validate(event: str, fields: Dict[str, Any]) -> None:
    required = _REQUIRED.get(event)
    if not required:
        return
    missing = [k for k in required if k not in fields]
    if missing:
        raise KeyError(f"missing fields for {event}: {', '.join(missing)}")


def _log(level: str, event: str, **fields: Any) -> Dict[str, Any]:
    """Internal helper to emit a structured log line and return its payload."""

    for key in ("url", "cmd", "error", "line"):
        if key in fields:
            fields[key] = mask_credentials(str(fields[key]))
    _validate(event, fields)
    payload: Dict[str, Any] = {
        "ts": time.time(),
        "level": level,
        "event": event,
        **fields,
    }
    logger.log(level.upper(), json.dumps(payload, default=str))
    return payload


def event(event: str, **fields: Any) -> Dict[str, Any]:
    """Log an informational *event* with structured *fields*."""

    return _log("info", event, **fields)


def error(event: str, **fields: Any) -> Dict[str, Any]:
    """Log an error *event*."""

    return _log("error", event, **fields)


def _prune() -> None:
    # drop the least recently fired half
    by_age = sorted(_last_times, key=_last_times.__getitem__)
    for key in by_age[: len(by_age) // 2]:
        del _last_times[key]


def every(seconds: float, key: str) -> bool:
    """Return ``True`` if ``seconds`` elapsed since last call with *key*.

    This is useful for rate-limiting noisy logs. At most
    :data:`MAX_THROTTLE_KEYS` keys are remembered.
    """

    now = time.time()
    last = _last_times.get(key, 0)
    if now - last >= seconds:
        if key not in _last_times and len(_last_times) >= MAX_THROTTLE_KEYS:
            _prune()
        _last_times[key] = now
        return True
    return False


def log_throttled(fn, *args: Any, key: str, interval: float = 60, **kwargs: Any) -> None:
    """Invoke ``fn`` only if ``interval`` seconds elapsed for ``key``."""

    if every(interval, key):
        fn(*args, **kwargs)


__all__ = ["event", "error", "every", "log_throttled", "MAX_THROTTLE_KEYS"]
