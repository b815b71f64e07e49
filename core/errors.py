"""Error taxonomy shared by the supervisor and the HTTP layer."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""


class LaunchError(RelayError):
    """Raised when a transcoding process cannot be built or spawned."""


class RuntimeExit(RelayError):
    """A transcoding process ran and exited with a non-zero status."""

    def __init__(self, returncode: int | None) -> None:
        super().__init__(f"ffmpeg exited with code {returncode}")
        self.returncode = returncode


class DirectoryReadError(RelayError):
    """Raised when the camera directory cannot be read."""


class ArtifactCleanupError(RelayError):
    """Raised when stale playlist or segment files could not be removed."""


class BadRequest(RelayError):
    """Raised when the client sends a malformed request."""

    def __init__(self, message: str = "bad_request") -> None:
        super().__init__(message)


class Conflict(RelayError):
    """Raised when a resource conflict occurs."""

    def __init__(self, message: str = "conflict") -> None:
        super().__init__(message)


class NotFound(RelayError):
    """Raised when a requested resource cannot be located."""

    def __init__(self, message: str = "not_found") -> None:
        super().__init__(message)


def to_response(exc: Exception) -> tuple[int, dict]:
    """Convert known exceptions to an HTTP response tuple.

    Parameters
    ----------
    exc: Exception
        The exception to convert.

    Returns
    -------
    tuple[int, dict]
        A status code and JSON-serializable payload.
    """
    msg = str(exc)
    if isinstance(exc, BadRequest):
        return 400, {"ok": False, "error": msg}
    if isinstance(exc, Conflict):
        return 409, {"ok": False, "error": msg}
    if isinstance(exc, NotFound):
        return 404, {"ok": False, "error": msg}
    return 500, {"ok": False, "error": "internal_error"}


__all__ = [
    "RelayError",
    "LaunchError",
    "RuntimeExit",
    "DirectoryReadError",
    "ArtifactCleanupError",
    "BadRequest",
    "Conflict",
    "NotFound",
    "to_response",
]
