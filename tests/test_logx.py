import json

import pytest

from utils import logx


def test_event_masks_url(log_records):
    payload = logx.event(
        "stream_start", stream_id="stream1", profile="primary", url="rtsp://a:b@h:554/x"
    )
    assert payload["url"] == "rtsp://***:***@h:554/x"
    logged = json.loads(log_records[-1]["message"])
    assert logged["event"] == "stream_start"
    assert log_records[-1]["level"].name == "INFO"


def test_missing_fields_raise():
    with pytest.raises(KeyError):
        logx.error("stream_exit", stream_id="stream1")


def test_every_throttles():
    assert logx.every(60, "test-every-key") is True
    assert logx.every(60, "test-every-key") is False


def test_log_throttled():
    calls = []
    logx.log_throttled(calls.append, "x", key="test-throttle", interval=60)
    logx.log_throttled(calls.append, "y", key="test-throttle", interval=60)
    assert calls == ["x"]


def test_throttle_map_is_bounded(monkeypatch):
    monkeypatch.setattr(logx, "_last_times", {})
    for i in range(logx.MAX_THROTTLE_KEYS * 3):
        assert logx.every(60, f"bounded-{i}") is True
    assert len(logx._last_times) <= logx.MAX_THROTTLE_KEYS
    # the newest key is still remembered
    assert logx.every(60, f"bounded-{logx.MAX_THROTTLE_KEYS * 3 - 1}") is False
