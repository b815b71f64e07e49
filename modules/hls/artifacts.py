"""Filesystem area holding HLS playlists and segments for every stream."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from loguru import logger

from core.errors import ArtifactCleanupError

logger = logger.bind(module="artifacts")

# Minimal valid playlist served while a stream has no running process.
PLACEHOLDER_PLAYLIST = "#EXTM3U\n#EXT-X-VERSION:3\n"

ARTIFACT_SUFFIXES = (".m3u8", ".ts")


class ArtifactStore:
    """Paths and housekeeping for the streams directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def ensure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def playlist_path(self, stream_id: str) -> Path:
        return self.root / f"{stream_id}.m3u8"

    def segment_pattern(self, stream_id: str) -> Path:
        """Return the ``ffmpeg`` segment filename template for *stream_id*."""
        return self.root / f"{stream_id}_%03d.ts"

    def resolve(self, name: str) -> Path | None:
        """Return the artifact path for a served file *name*.

        Only plain file names with a known suffix are accepted.
        """
        if not name or "/" in name or "\\" in name or name.startswith("."):
            return None
        if not name.endswith(ARTIFACT_SUFFIXES):
            return None
        return self.root / name

    def clear(self) -> int:
        """Delete every playlist and segment file.

        Returns the number of files removed. Raises
        :class:`ArtifactCleanupError` when the directory cannot be listed or
        some files could not be removed; removable files are still removed.
        """
        try:
            candidates = [
                p for p in self.root.iterdir() if p.is_file() and p.suffix in ARTIFACT_SUFFIXES
            ]
        except FileNotFoundError:
            self.ensure()
            return 0
        except OSError as exc:
            raise ArtifactCleanupError(f"cannot list {self.root}: {exc}") from exc
        removed = 0
        failed: list[str] = []
        for path in candidates:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                failed.append(f"{path.name}: {exc}")
        if failed:
            raise ArtifactCleanupError("; ".join(failed))
        logger.info("Removed {} stale stream files from {}", removed, self.root)
        return removed

    def write_placeholder(self, stream_id: str) -> Path:
        """Atomically replace the playlist of *stream_id* with an empty one."""
        self.ensure()
        path = self.playlist_path(stream_id)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.root), prefix=f".{stream_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(PLACEHOLDER_PLAYLIST)
            os.replace(tmp_path, path)
        finally:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass
        return path

    def read_playlist(self, stream_id: str) -> str:
        """Return the playlist text, or the placeholder when there is none."""
        try:
            return self.playlist_path(stream_id).read_text(encoding="utf-8")
        except FileNotFoundError:
            return PLACEHOLDER_PLAYLIST


__all__ = ["ArtifactStore", "PLACEHOLDER_PLAYLIST"]
