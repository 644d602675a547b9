"""Tests for sync-group persistence."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_tandem import store
from git_tandem.topology import SyncGroupTopology


def test_save_and_load(tmp_path: Path) -> None:
    state = tmp_path / "state" / "sync.json"
    topology = SyncGroupTopology()
    group_id = topology.bind("主仓库", ["mirror"])

    store.save_topology(topology, state)

    raw = json.loads(state.read_text(encoding="utf-8"))
    assert raw["sync_groups"][group_id]["main"] == "主仓库"
    assert "主仓库" in state.read_text(encoding="utf-8")
    assert not state.with_suffix(".tmp").exists()

    loaded = store.load_topology(state)
    assert loaded.subordinates_of("主仓库") == ["mirror"]


@pytest.mark.parametrize(
    "content",
    [
        "",
        "   ",
        "{not json",
        "[]",
        '{"sync_groups": {"g": {"main": "A", "subordinates": 5}}}',
        '{"sync_groups": {"g": {"main": "A", "subordinates": "BC"}}}',
    ],
)
def test_load_tolerates_bad_files(tmp_path: Path, content: str) -> None:
    state = tmp_path / "sync.json"
    state.write_text(content)
    assert len(store.load_topology(state)) == 0


def test_load_missing_file(tmp_path: Path) -> None:
    assert len(store.load_topology(tmp_path / "absent.json")) == 0


def test_load_defaults_to_state_file(tmp_path: Path, mocker: MagicMock) -> None:
    state = tmp_path / "sync.json"
    mocker.patch("git_tandem.store.SYNC_FILE", state)
    topology = SyncGroupTopology()
    topology.bind("A", ["B"])

    store.save_topology(topology)

    assert state.exists()
    assert store.load_topology().role_of("B").value == "subordinate"


def test_save_failure_cleans_tmp_and_raises(tmp_path: Path, mocker: MagicMock) -> None:
    state = tmp_path / "sync.json"
    mocker.patch("git_tandem.store.os.replace", side_effect=OSError("disk full"))

    with pytest.raises(OSError):
        store.save_topology(SyncGroupTopology(), state)

    assert not state.with_suffix(".tmp").exists()
    assert not state.exists()
