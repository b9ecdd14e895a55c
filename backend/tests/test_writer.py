"""
Tests for the debounced snapshot writer and its sinks.

Run: pytest backend/tests/test_writer.py -v
"""
from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from broadcast.writer import SnapshotWriter, resolve_target
from shared.models.enums import WriteState
from shared.utils.redis_manager import MemoryStore


def test_resolve_target_appends_file_name_to_folders(tmp_path: Path) -> None:
    assert resolve_target(str(tmp_path)) == str(tmp_path / "data.json")
    assert resolve_target("overlay/out/") == str(Path("overlay/out") / "data.json")
    assert resolve_target("overlay/board.txt") == str(Path("overlay/board.txt") / "data.json")
    assert resolve_target("overlay/board.JSON") == "overlay/board.JSON"
    assert resolve_target("   ") == ""


@pytest.mark.asyncio
async def test_write_creates_file_atomically(tmp_path: Path) -> None:
    writer = SnapshotWriter(str(tmp_path / "nested"))
    status = await writer.write([{"Team1": "ALP"}])

    target = tmp_path / "nested" / "data.json"
    assert status.state == WriteState.SUCCESS
    assert status.message == f"JSON written to {target}"
    assert json.loads(target.read_text(encoding="utf-8")) == [{"Team1": "ALP"}]
    assert [p.name for p in target.parent.iterdir()] == ["data.json"]


@pytest.mark.asyncio
async def test_burst_of_triggers_writes_once(tmp_path: Path) -> None:
    store = MemoryStore()
    writer = SnapshotWriter(str(tmp_path), store=store, debounce_s=0.01)
    renders: list[int] = []

    def render(n: int):
        def _render():
            renders.append(n)
            return [{"Team1": f"v{n}"}]
        return _render

    for n in range(5):
        writer.schedule(render(n))
    assert writer.status.state == WriteState.PENDING
    await writer.flush()

    assert renders == [4]
    assert len(store.published) == 1
    assert json.loads(store.published[0]) == [{"Team1": "v4"}]
    assert await store.get_snapshot() == store.published[0]
    assert json.loads((tmp_path / "data.json").read_text(encoding="utf-8")) == [{"Team1": "v4"}]
    assert not writer.has_pending


@pytest.mark.asyncio
async def test_no_sink_reports_missing_path() -> None:
    writer = SnapshotWriter("")
    status = await writer.write([{}])
    assert status.state == WriteState.ERROR
    assert status.message == "Please enter a file path"


@pytest.mark.asyncio
async def test_unwritable_target_reports_error_and_still_publishes(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a folder", encoding="utf-8")
    store = MemoryStore()
    writer = SnapshotWriter(str(blocker / "sub" / "data.json"), store=store)

    status = await writer.write([{"Team1": "ALP"}])
    assert status.state == WriteState.ERROR
    assert status.message.startswith("Failed to write")
    assert len(store.published) == 1


@pytest.mark.asyncio
async def test_aclose_cancels_pending_write(tmp_path: Path) -> None:
    writer = SnapshotWriter(str(tmp_path), debounce_s=10)
    writer.schedule(lambda: [{"Team1": "late"}])
    await writer.aclose()
    assert not writer.has_pending
    assert not os.path.exists(tmp_path / "data.json")


@pytest.mark.asyncio
async def test_failed_replace_removes_temp_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(src, dst):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(os, "replace", refuse)
    writer = SnapshotWriter(str(tmp_path))
    status = await writer.write([{"Team1": "ALP"}])

    assert status.state == WriteState.ERROR
    assert "Permission denied" in status.message
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_render_failure_is_recorded(tmp_path: Path) -> None:
    store = MemoryStore()
    writer = SnapshotWriter(str(tmp_path), store=store, debounce_s=0)

    def broken():
        raise KeyError("Team1")

    writer.schedule(broken)
    await writer.flush()

    assert writer.status.state == WriteState.ERROR
    assert writer.status.message.startswith("Failed to render snapshot")
    assert writer._pending.exception() is None
    assert store.published == []
    assert not (tmp_path / "data.json").exists()
