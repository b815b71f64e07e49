"""HLS output: ffmpeg launcher and artifact store."""

from .artifacts import PLACEHOLDER_PLAYLIST, ArtifactStore
from .launcher import Profile, ProcessLauncher

__all__ = ["ArtifactStore", "PLACEHOLDER_PLAYLIST", "Profile", "ProcessLauncher"]
