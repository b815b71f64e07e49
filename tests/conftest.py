"""Shared pytest fixtures for relay testing."""

# ruff: noqa: E402

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))
sys.path.append(str(Path(__file__).resolve().parent))

from core.config import StreamSettings
from modules.hls.artifacts import ArtifactStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path) -> StreamSettings:
    return StreamSettings(
        streams_dir=tmp_path / "streams",
        cameras_file=tmp_path / "data" / "cameras.json",
        startup_pacing=0.01,
        restart_cooldown=0.01,
    )


@pytest.fixture
def store(settings) -> ArtifactStore:
    st = ArtifactStore(settings.streams_dir)
    st.ensure()
    return st


@pytest.fixture
def log_records():
    """Collect loguru records emitted during the test."""
    from loguru import logger

    records: list[dict] = []
    sink_id = logger.add(lambda msg: records.append(msg.record), level="DEBUG")
    yield records
    logger.remove(sink_id)
