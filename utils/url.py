"""URL helpers for camera sources."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

# userinfo runs up to the last "@" before the host; passwords may contain "@"
_CRED_RE = re.compile(r"(?<=://)[^\s/]*@")
_RTSP_RE = re.compile(r"^rtsp://([^\s/]*@)?([^:/@]+):(\d+)/(.+)$")


def mask_credentials(text: str) -> str:
    """Redact credentials in *text* for safe logging."""

    return _CRED_RE.sub("***:***@", text)


def extract_host(url: str) -> str | None:
    """Return the host part of a camera URL.

    Parameters
    ----------
    url: str
        Source URL, possibly carrying ``user:password@`` credentials.

    Returns
    -------
    str | None
        Hostname or IP address, ``None`` when the URL has none.
    """
    if not url:
        return None
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def is_valid_rtsp_url(url: str) -> bool:
    """Return ``True`` when *url* looks like ``rtsp://[creds@]host:port/path``."""

    return bool(url) and bool(_RTSP_RE.match(url))


__all__ = ["mask_credentials", "extract_host", "is_valid_rtsp_url"]
