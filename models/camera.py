"""Camera record as stored in the camera directory."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional

from utils.url import extract_host


@dataclass(frozen=True)
class Camera:
    index: int
    name: str
    source_url: str
    display_name: str = ""
    active: bool = True
    ip: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.display_name:
            object.__setattr__(self, "display_name", self.name)
        if self.ip is None:
            object.__setattr__(self, "ip", extract_host(self.source_url))

    def with_index(self, index: int) -> "Camera":
        return replace(self, index=index)


def serialize(cam: Camera) -> dict[str, Any]:
    """Return the on-disk representation of ``cam``.

    ``index`` is positional and therefore never persisted.
    """
    return {
        "name": cam.name,
        "displayName": cam.display_name,
        "rtspUrl": cam.source_url,
        "active": cam.active,
        "ip": cam.ip,
    }


def deserialize(data: dict[str, Any], index: int) -> Camera:
    return Camera(
        index=index,
        name=str(data.get("name", "")),
        source_url=str(data.get("rtspUrl", "")),
        display_name=str(data.get("displayName") or data.get("name", "")),
        active=data.get("active") is True,
        ip=data.get("ip") or None,
    )


__all__ = ["Camera", "serialize", "deserialize"]
