import pytest

from core.errors import LaunchError, RuntimeExit
from core.stream_entry import StreamEntry, StreamState
from fakes import FakeLauncher, wait_for
from models.camera import Camera
from modules.hls.artifacts import PLACEHOLDER_PLAYLIST
from modules.hls.launcher import Profile

pytestmark = pytest.mark.anyio

CAM = Camera(index=0, name="A", source_url="rtsp://u:p@10.0.0.5:554/x")


def _entry(launcher, store, gen, cooldown=0.01, profile=Profile.PRIMARY):
    return StreamEntry(CAM, gen[0], lambda: gen[0], launcher, store, cooldown=cooldown, profile=profile)


async def test_runs_primary_profile_first(store):
    gen = [1]
    launcher = FakeLauncher()
    entry = _entry(launcher, store, gen)
    entry.start()
    await wait_for(lambda: entry.state is StreamState.RUNNING)
    assert [c[0] for c in launcher.calls] == [Profile.PRIMARY]
    assert entry.stream_id == "stream1"
    assert entry.pid == launcher.procs[0][1].pid
    gen[0] += 1
    entry.stop()
    await entry.task
    assert entry.state is StreamState.STOPPED


async def test_primary_launch_failure_falls_back(store, log_records):
    gen = [1]
    launcher = FakeLauncher(fail_profiles={Profile.PRIMARY})
    entry = _entry(launcher, store, gen)
    entry.start()
    await wait_for(lambda: entry.state is StreamState.RUNNING)
    assert [c[0] for c in launcher.calls] == [Profile.PRIMARY, Profile.FALLBACK]
    assert entry.attempt_profile is Profile.FALLBACK
    assert entry.profile is Profile.PRIMARY
    assert entry.retry_count == 0
    assert any("using passthrough for this attempt" in r["message"] for r in log_records)
    gen[0] += 1
    entry.stop()
    await entry.task


async def test_both_profiles_failing_retry_with_fallback(store):
    gen = [1]
    launcher = FakeLauncher(fail_profiles={Profile.PRIMARY, Profile.FALLBACK})
    entry = _entry(launcher, store, gen)
    entry.start()
    await wait_for(lambda: len(launcher.calls) >= 3)
    profiles = [c[0] for c in launcher.calls]
    assert profiles[:3] == [Profile.PRIMARY, Profile.FALLBACK, Profile.FALLBACK]
    assert entry.retry_count >= 1
    assert isinstance(entry.last_error, LaunchError)
    assert store.playlist_path("stream1").read_text() == PLACEHOLDER_PLAYLIST
    gen[0] += 1
    entry.stop()
    await entry.task
    assert entry.state is StreamState.STOPPED


async def test_runtime_exit_keeps_profile(store):
    gen = [1]
    launcher = FakeLauncher(exit_codes=[1])
    entry = _entry(launcher, store, gen)
    entry.start()
    await wait_for(lambda: len(launcher.calls) == 2 and entry.state is StreamState.RUNNING)
    assert [c[0] for c in launcher.calls] == [Profile.PRIMARY, Profile.PRIMARY]
    assert entry.retry_count == 1
    assert entry.last_returncode == 1
    assert isinstance(entry.last_error, RuntimeExit)
    assert entry.last_error.returncode == 1
    gen[0] += 1
    entry.stop()
    await entry.task


async def test_clean_exit_does_not_restart(store):
    gen = [1]
    launcher = FakeLauncher(exit_codes=[0])
    entry = _entry(launcher, store, gen)
    await entry.start()
    assert entry.state is StreamState.STOPPED
    assert entry.retry_count == 0
    assert len(launcher.calls) == 1
    assert not store.playlist_path("stream1").exists()


async def test_nonzero_exit_writes_one_placeholder_then_restarts(store):
    gen = [1]
    writes = []
    real_write = store.write_placeholder

    def counting(stream_id):
        writes.append(stream_id)
        return real_write(stream_id)

    store.write_placeholder = counting
    launcher = FakeLauncher(exit_codes=[3])
    entry = _entry(launcher, store, gen)
    entry.start()
    await wait_for(lambda: len(launcher.calls) == 2)
    assert writes == ["stream1"]
    assert entry.retry_count == 1
    gen[0] += 1
    entry.stop()
    await entry.task


async def test_three_kills_leave_entry_restarting(store):
    gen = [1]
    entry = None

    def slow_down(n):
        if n == 3:
            entry.cooldown = 30.0

    launcher = FakeLauncher(exit_codes=[137, 137, 137], on_launch=slow_down)
    entry = _entry(launcher, store, gen)
    entry.start()
    await wait_for(lambda: entry.retry_count == 3)
    assert entry.state is StreamState.RESTARTING
    assert store.read_playlist("stream1") == PLACEHOLDER_PLAYLIST
    assert store.playlist_path("stream1").exists()
    gen[0] += 1
    entry.stop()
    await entry.task
    assert entry.state is StreamState.STOPPED
    assert len(launcher.calls) == 3


async def test_stale_entry_does_not_restart_after_cooldown(store):
    gen = [1]
    launcher = FakeLauncher(exit_codes=[1])
    entry = _entry(launcher, store, gen, cooldown=0.2)
    entry.start()
    await wait_for(lambda: entry.state is StreamState.RESTARTING)
    gen[0] += 1
    await entry.task
    assert entry.state is StreamState.STOPPED
    assert len(launcher.calls) == 1


async def test_superseded_exit_is_not_retried(store):
    gen = [1]
    launcher = FakeLauncher()
    entry = _entry(launcher, store, gen)
    entry.start()
    await wait_for(lambda: entry.state is StreamState.RUNNING)
    proc = launcher.procs[0][1]
    gen[0] += 1
    entry.stop()
    await entry.task
    assert proc.terminated
    assert entry.retry_count == 0
    assert not store.playlist_path("stream1").exists()


async def test_process_started_after_supersession_is_terminated(store):
    gen = [1]
    launcher = FakeLauncher(on_launch=lambda n: gen.__setitem__(0, 2))
    entry = _entry(launcher, store, gen)
    await entry.start()
    assert launcher.procs[0][1].terminated
    assert entry.state is StreamState.STOPPED


async def test_fallback_applies_to_one_attempt_only(store):
    gen = [1]
    launcher = FakeLauncher(exit_codes=[1], fail_counts={Profile.PRIMARY: 1})
    entry = _entry(launcher, store, gen)
    entry.start()
    await wait_for(lambda: len(launcher.calls) == 3 and entry.state is StreamState.RUNNING)
    assert [c[0] for c in launcher.calls] == [Profile.PRIMARY, Profile.FALLBACK, Profile.PRIMARY]
    assert entry.attempt_profile is Profile.PRIMARY
    assert entry.retry_count == 1
    gen[0] += 1
    entry.stop()
    await entry.task


async def test_failed_fallback_launch_retries_with_fallback_once(store):
    gen = [1]
    launcher = FakeLauncher(
        exit_codes=[1], fail_counts={Profile.PRIMARY: 1, Profile.FALLBACK: 1}
    )
    entry = _entry(launcher, store, gen)
    entry.start()
    await wait_for(lambda: len(launcher.calls) == 4 and entry.state is StreamState.RUNNING)
    assert [c[0] for c in launcher.calls] == [
        Profile.PRIMARY,
        Profile.FALLBACK,
        Profile.FALLBACK,
        Profile.PRIMARY,
    ]
    assert entry.retry_count == 2
    assert entry.snapshot()["last_error"] == "ffmpeg exited with code 1"
    gen[0] += 1
    entry.stop()
    await entry.task
