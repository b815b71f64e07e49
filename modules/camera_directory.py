"""JSON file backed camera directory.

Cameras are addressed by their position in the stored list. That position is
also the id exposed by the HTTP API, so deleting a camera renumbers every
camera after it.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any

from loguru import logger

from core.errors import Conflict, DirectoryReadError, NotFound
from models.camera import Camera, deserialize, serialize

logger = logger.bind(module="directory")


class CameraDirectory:
    """Durable list of camera records stored as a JSON array."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def ensure(self) -> None:
        """Create the backing file as an empty list when missing."""
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._write([])
        logger.info("Created camera file at {}", self.path)

    # Internal helpers ---------------------------------------------------------

    def _read(self) -> list[dict[str, Any]]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise DirectoryReadError(f"cannot read {self.path}: {exc}") from exc
        try:
            data = json.loads(raw or "[]")
        except json.JSONDecodeError as exc:
            raise DirectoryReadError(f"invalid JSON in {self.path}: {exc}") from exc
        if not isinstance(data, list):
            raise DirectoryReadError(f"{self.path} does not hold a list")
        return [item for item in data if isinstance(item, dict)]

    def _write(self, records: list[dict[str, Any]]) -> None:
        dir_name = self.path.parent
        dir_name.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(dir_name), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        finally:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass

    def _load(self) -> list[Camera]:
        return [deserialize(item, i) for i, item in enumerate(self._read())]

    def _save(self, cameras: list[Camera]) -> None:
        self._write([serialize(cam) for cam in cameras])

    @staticmethod
    def _check_url_free(cameras: list[Camera], source_url: str, skip: int = -1) -> None:
        if any(cam.source_url == source_url and cam.index != skip for cam in cameras):
            raise Conflict("a camera with that URL already exists")

    @staticmethod
    def _check_index(cameras: list[Camera], index: int) -> None:
        if index < 0 or index >= len(cameras):
            raise NotFound("camera not found")

    # Read operations ---------------------------------------------------------

    def list_all(self) -> list[Camera]:
        with self._lock:
            return self._load()

    def list_active(self) -> list[Camera]:
        """Return active cameras re-indexed by their position among active ones."""
        with self._lock:
            active = [cam for cam in self._load() if cam.active]
        return [cam.with_index(i) for i, cam in enumerate(active)]

    def get(self, index: int) -> Camera:
        with self._lock:
            cameras = self._load()
        self._check_index(cameras, index)
        return cameras[index]

    # Mutations ---------------------------------------------------------------

    def add(self, name: str, source_url: str, active: bool = True) -> Camera:
        with self._lock:
            cameras = self._load()
            self._check_url_free(cameras, source_url)
            cam = Camera(index=len(cameras), name=name, source_url=source_url, active=active)
            cameras.append(cam)
            self._save(cameras)
        logger.info("Added camera '{}' (id={}, active={})", cam.name, cam.index, cam.active)
        return cam

    def set_active(self, index: int, active: bool) -> Camera:
        with self._lock:
            cameras = self._load()
            self._check_index(cameras, index)
            cameras[index] = replace(cameras[index], active=active)
            self._save(cameras)
        return cameras[index]

    def update(self, index: int, name: str, source_url: str, active: bool | None = None) -> Camera:
        """Replace name and source URL; keep the current state when *active* is ``None``.

        The display name is left alone and the host is derived again.
        """
        with self._lock:
            cameras = self._load()
            self._check_index(cameras, index)
            self._check_url_free(cameras, source_url, skip=index)
            current = cameras[index]
            cameras[index] = replace(
                current,
                name=name,
                source_url=source_url,
                active=current.active if active is None else active,
                ip=None,
            )
            self._save(cameras)
        logger.info("Updated camera '{}' (id={})", name, index)
        return cameras[index]

    def set_display_name(self, index: int, display_name: str) -> Camera:
        with self._lock:
            cameras = self._load()
            self._check_index(cameras, index)
            cameras[index] = replace(cameras[index], display_name=display_name)
            self._save(cameras)
        return cameras[index]

    def delete(self, index: int) -> Camera:
        with self._lock:
            cameras = self._load()
            self._check_index(cameras, index)
            removed = cameras.pop(index)
            self._save(cameras)
        logger.info("Deleted camera '{}' (id={})", removed.name, index)
        return removed


__all__ = ["CameraDirectory"]
