from __future__ import annotations

import asyncio
from typing import Callable, Iterable

from loguru import logger

from core.config import StreamSettings
from core.errors import ArtifactCleanupError
from core.stream_entry import Launcher, StreamEntry, StreamState
from models.camera import Camera
from modules.hls.artifacts import ArtifactStore
from modules.hls.launcher import Profile

logger = logger.bind(module="supervisor")

CamsGetter = Callable[[], Iterable[Camera]]


class StreamSupervisor:
    """Keep exactly one ``ffmpeg`` process per active camera.

    :meth:`reconcile` is the only mutating entry point. It runs under
    ``reconcile_lock`` so concurrent triggers queue instead of interleaving,
    and it bumps ``generation`` so entries from earlier passes can never
    restart a process once a newer pass has begun.
    """

    def __init__(
        self,
        settings: StreamSettings,
        cams_getter: CamsGetter,
        launcher: Launcher,
        store: ArtifactStore,
    ) -> None:
        self.settings = settings
        self._get_cams = cams_getter
        self._launcher = launcher
        self.store = store
        self._entries: list[StreamEntry] = []
        self._generation = 0
        self.reconcile_lock = asyncio.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def entries(self) -> tuple[StreamEntry, ...]:
        return tuple(self._entries)

    def _current_generation(self) -> int:
        return self._generation

    def _initial_profile(self) -> Profile:
        return Profile.FALLBACK if self.settings.prefer_passthrough else Profile.PRIMARY

    def stop_all(self) -> list[StreamEntry]:
        """Invalidate every entry and ask its process to terminate.

        Returns the entries that were stopped so callers may wait on them.
        """
        self._generation += 1
        stopped, self._entries = self._entries, []
        for entry in stopped:
            entry.stop()
        if stopped:
            logger.info(f"Stopping {len(stopped)} ffmpeg processes (generation {self._generation})")
        return stopped

    def _clear_artifacts(self) -> None:
        try:
            self.store.clear()
        except ArtifactCleanupError as exc:
            logger.warning(f"Stream file cleanup incomplete: {exc}")

    async def _read_active(self) -> list[Camera]:
        try:
            cameras = await asyncio.to_thread(lambda: list(self._get_cams()))
        except Exception as exc:
            logger.error(f"Camera directory unavailable, treating as no active cameras: {exc}")
            return []
        return [cam if cam.index == i else cam.with_index(i) for i, cam in enumerate(cameras)]

    async def reconcile(self) -> list[Camera]:
        """Restart streaming for the current set of active cameras.

        Never raises; failures are logged and the affected step behaves as if
        there were no active cameras. Returns the cameras whose start was
        attempted. Processes keep starting asynchronously after return.
        """
        async with self.reconcile_lock:
            try:
                return await self._reconcile()
            except Exception:
                logger.exception("Reconciliation failed")
                return []

    async def _reconcile(self) -> list[Camera]:
        self.stop_all()
        generation = self._generation
        self._clear_artifacts()
        cameras = await self._read_active()
        logger.info(f"Starting streams for {len(cameras)} active cameras")
        for position, cam in enumerate(cameras):
            if position:
                await asyncio.sleep(self.settings.startup_pacing)
            if generation != self._generation:
                logger.info("Reconciliation superseded; remaining cameras not started")
                break
            entry = StreamEntry(
                cam,
                generation,
                self._current_generation,
                self._launcher,
                self.store,
                cooldown=self.settings.restart_cooldown,
                profile=self._initial_profile(),
            )
            entry.start()
            self._entries.append(entry)
            logger.info(f"[{entry.stream_id}] scheduled '{cam.name}'")
        return cameras

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop every stream and give the processes *timeout* seconds to exit."""
        stopped = self.stop_all()
        tasks = [entry.task for entry in stopped if entry.task is not None]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"{len(pending)} stream tasks did not stop within {timeout}s")

    def status(self) -> list[dict]:
        return [entry.snapshot() for entry in self._entries]

    def running(self) -> list[StreamEntry]:
        return [e for e in self._entries if e.state is StreamState.RUNNING]


__all__ = ["StreamSupervisor"]
