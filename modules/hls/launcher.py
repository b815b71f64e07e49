from __future__ import annotations

"""Build and spawn the ``ffmpeg`` process relaying one camera to HLS.

Two argument presets exist. ``Profile.PRIMARY`` re-encodes to a scaled,
bitrate-bounded H.264 stream tuned for latency. ``Profile.FALLBACK`` copies
the camera's video stream untouched, which is cheap and used when the primary
preset cannot be built or launched. Both force TCP transport for RTSP and
write a rolling HLS window into the artifact store.
"""

import asyncio  # noqa: E402
import re  # noqa: E402
from enum import Enum  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import Callable  # noqa: E402

from loguru import logger  # noqa: E402

from core.config import StreamSettings  # noqa: E402
from core.errors import LaunchError  # noqa: E402
from models.camera import Camera  # noqa: E402
from utils.logx import log_throttled  # noqa: E402
from utils.url import mask_credentials  # noqa: E402

from .artifacts import ArtifactStore  # noqa: E402

logger = logger.bind(module="launcher")

_BITRATE_RE = re.compile(r"^\d+(\.\d+)?[kKmM]?$")
_SEVERE_MARKERS = ("error", "fail")
# ffmpeg ends progress lines with "\r" and diagnostics with "\n"
_LINE_BREAK_RE = re.compile(rb"[\r\n]+")
_VOLATILE_RE = re.compile(r"0x[0-9a-fA-F]+|\d+")
_READ_CHUNK = 4096
_MAX_PENDING = 16 * 1024


class Profile(str, Enum):
    """Named argument presets for the transcoding process."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


def _input_args(url: str, settings: StreamSettings) -> list[str]:
    return [
        settings.ffmpeg_bin,
        "-hide_banner",
        "-nostats",
        "-loglevel",
        "info" if settings.ffmpeg_debug else "warning",
        "-nostdin",
        "-rtsp_transport",
        "tcp",
        "-timeout",
        str(settings.connect_timeout_usec),
        "-i",
        url,
    ]


def _hls_args(playlist: Path, segments: Path, settings: StreamSettings) -> list[str]:
    return [
        "-f",
        "hls",
        "-hls_time",
        str(settings.hls_time),
        "-hls_list_size",
        str(settings.hls_list_size),
        "-hls_flags",
        "delete_segments+append_list+discont_start",
        "-hls_segment_filename",
        str(segments),
        str(playlist),
    ]


def _check_primary(settings: StreamSettings) -> None:
    problems = []
    if settings.target_width <= 0:
        problems.append(f"target_width={settings.target_width}")
    if settings.frame_rate <= 0:
        problems.append(f"frame_rate={settings.frame_rate}")
    if settings.gop <= 0:
        problems.append(f"gop={settings.gop}")
    for name in ("video_bitrate", "max_rate", "buffer_size"):
        value = getattr(settings, name)
        if not _BITRATE_RE.match(str(value)):
            problems.append(f"{name}={value!r}")
    if problems:
        raise LaunchError("invalid primary profile: " + ", ".join(problems))


def build_primary_args(
    url: str, playlist: Path, segments: Path, settings: StreamSettings
) -> list[str]:
    """Return the re-encoding ``ffmpeg`` command.

    Raises :class:`LaunchError` when the encoder settings are unusable.
    """
    _check_primary(settings)
    cmd = _input_args(url, settings)
    cmd += [
        "-vf",
        f"scale={settings.target_width}:-2",
        "-c:v",
        "libx264",
        "-preset",
        "veryfast",
        "-tune",
        "zerolatency",
        "-profile:v",
        "baseline",
        "-level",
        "3.0",
        "-pix_fmt",
        "yuv420p",
        "-r",
        str(settings.frame_rate),
        "-g",
        str(settings.gop),
        "-b:v",
        settings.video_bitrate,
        "-maxrate",
        settings.max_rate,
        "-bufsize",
        settings.buffer_size,
        "-an",
    ]
    cmd += _hls_args(playlist, segments, settings)
    return cmd


def build_fallback_args(
    url: str, playlist: Path, segments: Path, settings: StreamSettings
) -> list[str]:
    """Return the passthrough ``ffmpeg`` command (video copied, audio dropped)."""
    cmd = _input_args(url, settings)
    cmd += ["-c:v", "copy", "-an"]
    cmd += _hls_args(playlist, segments, settings)
    return cmd


_BUILDERS: dict[Profile, Callable[[str, Path, Path, StreamSettings], list[str]]] = {
    Profile.PRIMARY: build_primary_args,
    Profile.FALLBACK: build_fallback_args,
}


def build_args(
    profile: Profile, camera: Camera, stream_id: str, store: ArtifactStore, settings: StreamSettings
) -> list[str]:
    """Return the command for *camera* under *profile*, writing as *stream_id*."""
    return _BUILDERS[profile](
        camera.source_url,
        store.playlist_path(stream_id),
        store.segment_pattern(stream_id),
        settings,
    )


def is_severe(line: str) -> bool:
    lowered = line.lower()
    return any(marker in lowered for marker in _SEVERE_MARKERS)


def throttle_key(stream_id: str, line: str) -> str:
    """Return the rate-limit key for a stderr *line*.

    Addresses and numbers change on every ffmpeg run (``[rtsp @ 0x55d0...]``,
    ports, timestamps), so they are collapsed to keep one key per message.
    """
    return f"stderr:{stream_id}:{_VOLATILE_RE.sub('#', line)[:80]}"


def _scan_line(raw: bytes, stream_id: str, tag: str, verbose: bool) -> None:
    line = mask_credentials(raw.decode("utf-8", "replace").strip())
    if not line:
        return
    if is_severe(line):
        log_throttled(
            logger.error,
            f"{tag} {line}",
            key=throttle_key(stream_id, line),
            interval=5,
        )
    if verbose:
        logger.debug(f"{tag} {line}")


async def drain_stderr(
    proc: asyncio.subprocess.Process, stream_id: str, camera_name: str, verbose: bool = False
) -> None:
    """Scan ``ffmpeg`` stderr and surface suspicious lines through the logger.

    The pipe is read in fixed-size chunks and split on both ``\\r`` and
    ``\\n`` until ``ffmpeg`` closes it. Stopping early would leave ffmpeg
    blocked on a full pipe, so overlong fragments are scanned as they are
    and reading carries on.
    """
    stderr = proc.stderr
    if stderr is None:
        return
    tag = f"[{stream_id}:{camera_name}]"
    pending = b""
    try:
        while True:
            chunk = await stderr.read(_READ_CHUNK)
            if not chunk:
                break
            *lines, pending = _LINE_BREAK_RE.split(pending + chunk)
            if len(pending) > _MAX_PENDING:
                lines.append(pending)
                pending = b""
            for raw in lines:
                _scan_line(raw, stream_id, tag, verbose)
    except OSError as exc:
        logger.debug(f"{tag} stderr reader stopped: {exc}")
    if pending:
        _scan_line(pending, stream_id, tag, verbose)


class ProcessLauncher:
    """Spawn ``ffmpeg`` processes for stream entries."""

    def __init__(self, settings: StreamSettings, store: ArtifactStore) -> None:
        self.settings = settings
        self.store = store
        self._readers: set[asyncio.Task] = set()

    async def launch(
        self, profile: Profile, camera: Camera, stream_id: str
    ) -> asyncio.subprocess.Process:
        """Start ``ffmpeg`` for *camera* and attach a stderr scanning task.

        Raises :class:`LaunchError` when the command cannot be built or the
        executable cannot be spawned. Reachability of the camera is never
        checked here; it surfaces through the exit status.
        """
        cmd = build_args(profile, camera, stream_id, self.store, self.settings)
        logger.debug(f"[{stream_id}] ffmpeg cmd: {mask_credentials(' '.join(cmd))}")
        self.store.ensure()
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            raise LaunchError(f"cannot spawn {cmd[0]}: {exc}") from exc
        reader = asyncio.create_task(
            drain_stderr(proc, stream_id, camera.name, self.settings.ffmpeg_debug),
            name=f"stderr:{stream_id}",
        )
        self._readers.add(reader)
        reader.add_done_callback(self._readers.discard)
        return proc


__all__ = [
    "Profile",
    "ProcessLauncher",
    "build_args",
    "build_primary_args",
    "build_fallback_args",
    "drain_stderr",
    "is_severe",
    "throttle_key",
]
