import json

import pytest

from core.errors import Conflict, DirectoryReadError, NotFound
from modules.camera_directory import CameraDirectory


@pytest.fixture
def directory(tmp_path):
    d = CameraDirectory(tmp_path / "data" / "cameras.json")
    d.ensure()
    return d


def test_ensure_creates_empty_list(directory):
    assert json.loads(directory.path.read_text()) == []
    assert directory.list_all() == []


def test_add_persists_camelcase_keys(directory):
    cam = directory.add("Door", "rtsp://u:p@192.168.1.20:554/live")
    assert cam.index == 0
    assert cam.display_name == "Door"
    assert cam.ip == "192.168.1.20"
    (stored,) = json.loads(directory.path.read_text())
    assert stored == {
        "name": "Door",
        "displayName": "Door",
        "rtspUrl": "rtsp://u:p@192.168.1.20:554/live",
        "active": True,
        "ip": "192.168.1.20",
    }


def test_duplicate_url_conflicts(directory):
    directory.add("A", "rtsp://10.0.0.1:554/a")
    with pytest.raises(Conflict):
        directory.add("B", "rtsp://10.0.0.1:554/a")


def test_list_active_reindexes(directory):
    directory.add("A", "rtsp://10.0.0.1:554/a", active=False)
    directory.add("B", "rtsp://10.0.0.2:554/b")
    directory.add("C", "rtsp://10.0.0.3:554/c")
    active = directory.list_active()
    assert [(c.index, c.name) for c in active] == [(0, "B"), (1, "C")]
    assert [c.index for c in directory.list_all()] == [0, 1, 2]


def test_delete_renumbers(directory):
    directory.add("A", "rtsp://10.0.0.1:554/a")
    directory.add("B", "rtsp://10.0.0.2:554/b")
    removed = directory.delete(0)
    assert removed.name == "A"
    assert directory.get(0).name == "B"
    with pytest.raises(NotFound):
        directory.get(1)


def test_updates(directory):
    directory.add("A", "rtsp://10.0.0.1:554/a")
    assert directory.set_active(0, False).active is False
    assert directory.list_active() == []
    assert directory.set_display_name(0, "Lobby").display_name == "Lobby"
    assert directory.get(0).display_name == "Lobby"
    with pytest.raises(NotFound):
        directory.set_active(5, True)


def test_non_boolean_active_is_inactive(directory):
    directory.path.write_text(json.dumps([{"name": "A", "rtspUrl": "rtsp://x", "active": "yes"}]))
    assert directory.list_active() == []


@pytest.mark.parametrize("content", ["{not json", '{"name": "A"}'])
def test_unreadable_file_raises(directory, content):
    directory.path.write_text(content)
    with pytest.raises(DirectoryReadError):
        directory.list_active()


def test_missing_file_reads_as_empty(tmp_path):
    assert CameraDirectory(tmp_path / "none.json").list_active() == []


def test_update_replaces_name_and_url(directory):
    directory.add("A", "rtsp://10.0.0.1:554/a", active=False)
    directory.set_display_name(0, "Lobby")
    cam = directory.update(0, "A2", "rtsp://u:p@10.0.0.9:554/b")
    assert (cam.name, cam.source_url, cam.ip) == ("A2", "rtsp://u:p@10.0.0.9:554/b", "10.0.0.9")
    assert cam.display_name == "Lobby"
    assert cam.active is False
    assert directory.update(0, "A2", "rtsp://u:p@10.0.0.9:554/b", active=True).active is True
    stored = json.loads(directory.path.read_text())[0]
    assert stored["ip"] == "10.0.0.9"
    assert stored["active"] is True


def test_update_checks_index_and_url(directory):
    directory.add("A", "rtsp://10.0.0.1:554/a")
    directory.add("B", "rtsp://10.0.0.2:554/b")
    with pytest.raises(NotFound):
        directory.update(4, "X", "rtsp://10.0.0.3:554/x")
    with pytest.raises(Conflict):
        directory.update(1, "B", "rtsp://10.0.0.1:554/a")
    # keeping its own URL is not a conflict
    assert directory.update(1, "B2", "rtsp://10.0.0.2:554/b").name == "B2"
