"""Lifecycle of one supervised camera stream."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Optional, Protocol

from loguru import logger

from core.errors import LaunchError, RelayError, RuntimeExit
from models.camera import Camera
from modules.hls.launcher import Profile
from utils import logx
from utils.url import mask_credentials

logger = logger.bind(module="stream")


class StreamState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class Launcher(Protocol):
    async def launch(
        self, profile: Profile, camera: Camera, stream_id: str
    ) -> asyncio.subprocess.Process: ...


class PlaceholderWriter(Protocol):
    def write_placeholder(self, stream_id: str) -> object: ...


def stream_id_for(index: int) -> str:
    """Return the stream id for the camera at *index* of the active list."""
    return f"stream{index + 1}"


class StreamEntry:
    """Run and restart the ``ffmpeg`` process of a single camera.

    The entry belongs to the reconciliation that created it, identified by
    ``generation``. Before every start and restart it compares that value with
    ``current_generation()`` and stops for good once a newer reconciliation
    has begun. Non-zero exits are retried after ``cooldown`` seconds without
    limit; a clean exit ends the entry.

    ``profile`` is the preset every attempt starts from. When it is
    ``PRIMARY`` and the launch raises :class:`LaunchError`, that attempt is
    retried at once under ``FALLBACK``. Only an attempt whose ``FALLBACK``
    launch also raised makes the next attempt start from ``FALLBACK``.
    ``attempt_profile`` holds the preset of the latest launch.
    """

    def __init__(
        self,
        camera: Camera,
        generation: int,
        current_generation: Callable[[], int],
        launcher: Launcher,
        store: PlaceholderWriter,
        cooldown: float = 5.0,
        profile: Profile = Profile.PRIMARY,
    ) -> None:
        self.stream_id = stream_id_for(camera.index)
        self.camera = camera
        self.generation = generation
        self._current_generation = current_generation
        self._launcher = launcher
        self._store = store
        self.cooldown = cooldown
        self.profile = profile
        self.attempt_profile = profile
        self._next_profile = profile
        self.process: Optional[asyncio.subprocess.Process] = None
        self.retry_count = 0
        self.last_returncode: int | None = None
        self.last_error: RelayError | None = None
        self.state = StreamState.STARTING
        self._task: asyncio.Task | None = None
        self._wake = asyncio.Event()

    @property
    def stale(self) -> bool:
        return self.generation != self._current_generation()

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    @property
    def pid(self) -> int | None:
        proc = self.process
        return proc.pid if proc is not None else None

    def start(self) -> asyncio.Task:
        """Schedule the lifecycle loop on the running event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"entry:{self.stream_id}")
        return self._task

    def stop(self) -> None:
        """Request termination without waiting for the process to exit.

        The lifecycle loop observes the exit, or the superseded generation
        while cooling down, and moves to ``STOPPED`` on its own.
        """
        self._wake.set()
        proc = self.process
        if proc is not None:
            self._terminate(proc)

    def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            pass
        except OSError as exc:
            logger.warning(f"[{self.stream_id}] terminate failed: {exc}")

    def snapshot(self) -> dict:
        return {
            "stream_id": self.stream_id,
            "camera": self.camera.name,
            "display_name": self.camera.display_name,
            "profile": self.attempt_profile.value,
            "state": self.state.value,
            "retry_count": self.retry_count,
            "last_returncode": self.last_returncode,
            "last_error": str(self.last_error) if self.last_error else None,
            "pid": self.pid,
            "generation": self.generation,
        }

    async def _launch(self) -> asyncio.subprocess.Process:
        profile, self._next_profile = self._next_profile, self.profile
        self.attempt_profile = profile
        if profile is Profile.PRIMARY:
            try:
                return await self._launcher.launch(Profile.PRIMARY, self.camera, self.stream_id)
            except LaunchError as exc:
                logger.warning(
                    f"[{self.stream_id}] primary profile failed for '{self.camera.name}': "
                    f"{mask_credentials(str(exc))}; using passthrough for this attempt"
                )
                self.attempt_profile = Profile.FALLBACK
        try:
            return await self._launcher.launch(Profile.FALLBACK, self.camera, self.stream_id)
        except LaunchError:
            self._next_profile = Profile.FALLBACK
            raise

    def _record_failure(self, exc: RelayError) -> None:
        self.last_error = exc
        try:
            self._store.write_placeholder(self.stream_id)
        except OSError as err:
            logger.error(f"[{self.stream_id}] cannot write placeholder playlist: {err}")
        self.retry_count += 1

    async def _attempt(self) -> bool:
        """Run one process to completion; return ``True`` when a retry is due."""
        self.state = StreamState.STARTING
        try:
            proc = await self._launch()
        except LaunchError as exc:
            logx.error(
                "stream_launch_failed",
                stream_id=self.stream_id,
                profile=self.attempt_profile.value,
                error=str(exc),
            )
            if self.stale:
                return False
            self._record_failure(exc)
            return True
        if self.stale:
            self._terminate(proc)
            return False
        self.process = proc
        self.state = StreamState.RUNNING
        logx.event(
            "stream_start",
            stream_id=self.stream_id,
            camera=self.camera.name,
            profile=self.attempt_profile.value,
            url=self.camera.source_url,
            pid=proc.pid,
            retry_count=self.retry_count,
        )
        try:
            rc = await proc.wait()
        except asyncio.CancelledError:
            self._terminate(proc)
            raise
        finally:
            self.process = None
        self.last_returncode = rc
        if rc == 0 or self.stale:
            logger.info(f"[{self.stream_id}] ffmpeg for '{self.camera.name}' ended (rc={rc})")
            return False
        self._record_failure(RuntimeExit(rc))
        logx.error(
            "stream_exit",
            stream_id=self.stream_id,
            camera=self.camera.name,
            rc=rc,
            retry_count=self.retry_count,
        )
        return True

    async def _cool_down(self) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self.cooldown)
        except asyncio.TimeoutError:
            pass

    async def _run(self) -> None:
        try:
            while not self.stale:
                try:
                    retry = await self._attempt()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception(f"[{self.stream_id}] unexpected lifecycle failure")
                    retry = True
                if not retry:
                    break
                self.state = StreamState.RESTARTING
                logger.info(
                    f"[{self.stream_id}] restarting '{self.camera.name}' in {self.cooldown:.1f}s "
                    f"(retry {self.retry_count}, next profile={self._next_profile.value})"
                )
                await self._cool_down()
        finally:
            self.state = StreamState.STOPPED


__all__ = ["StreamEntry", "StreamState", "stream_id_for"]
