from __future__ import annotations

import asyncio
import logging
import os
import threading
from pathlib import Path

import pytest

from guildsync.workspace import tracker as tracker_module
from guildsync.workspace.notifications import ChangeDispatcher, ChangeNotification
from guildsync.workspace.states import DriftState
from guildsync.workspace.tracker import ChangeTracker, hash_bytes


def _tracker(root: Path) -> tuple[ChangeTracker, list[ChangeNotification]]:
    dispatcher = ChangeDispatcher()
    seen: list[ChangeNotification] = []
    dispatcher.subscribe(seen.append)
    tracker = ChangeTracker(
        root, dispatcher=dispatcher, logger=logging.getLogger("test.tracker")
    )
    return tracker, seen


def _rewrite(path: Path, text: str) -> None:
    # Bump mtime explicitly so coarse filesystem clocks still see a change.
    before = path.stat().st_mtime_ns if path.exists() else 0
    path.write_text(text, encoding="utf-8")
    os.utime(path, ns=(before + 1_000_000, before + 1_000_000))


@pytest.mark.anyio
async def test_edit_then_revert_returns_to_unmodified(make_root) -> None:
    root = make_root(baseline={"a.ts": "let a = 1;"}, working={"a.ts": "let a = 1;"})
    tracker, seen = _tracker(root)

    assert await tracker.initial_scan() == {}
    assert tracker.state_of("a.ts") is None

    (root / "a.ts").write_text("let a = 2;", encoding="utf-8")
    assert await tracker.classify("a.ts") is DriftState.MODIFIED
    await tracker.on_change(root / "a.ts")
    assert tracker.changes == {"a.ts": DriftState.MODIFIED}

    (root / "a.ts").write_text("let a = 1;", encoding="utf-8")
    await tracker.on_change(root / "a.ts")
    assert tracker.changes == {}
    assert tracker.state_of("a.ts") is None

    assert [(n.kind, n.previous, n.current) for n in seen] == [
        ("added", None, DriftState.MODIFIED),
        ("removed", DriftState.MODIFIED, DriftState.UNMODIFIED),
    ]


@pytest.mark.anyio
async def test_initial_scan_reports_baseline_only_scripts_as_deleted(make_root) -> None:
    root = make_root(
        baseline={"a.ts": "a", "b.ts": "b"},
        working={"a.ts": "a", "new.ts": "fresh"},
    )
    tracker, seen = _tracker(root)

    changes = await tracker.initial_scan()

    assert changes == {"b.ts": DriftState.DELETED, "new.ts": DriftState.CREATED}
    assert tracker.state_of("b.ts") is DriftState.DELETED
    assert {n.path for n in seen} == {"b.ts", "new.ts"}


@pytest.mark.anyio
async def test_initial_scan_ignores_non_script_files(make_root) -> None:
    root = make_root(working={"notes.md": "x", "tsconfig.json": "{}"})
    (root / ".hidden.ts").write_text("x", encoding="utf-8")
    tracker, _ = _tracker(root)

    assert await tracker.initial_scan() == {}


@pytest.mark.anyio
async def test_create_without_baseline_is_created(make_root) -> None:
    root = make_root()
    tracker, seen = _tracker(root)

    (root / "fresh.ts").write_text("console.log(1)", encoding="utf-8")
    await tracker.on_create(root / "fresh.ts")

    assert tracker.state_of("fresh.ts") is DriftState.CREATED
    assert len(seen) == 1


@pytest.mark.anyio
async def test_repeated_change_with_same_state_emits_once(make_root) -> None:
    root = make_root(baseline={"a.ts": "one"}, working={"a.ts": "two"})
    tracker, seen = _tracker(root)

    await tracker.on_change("a.ts")
    (root / "a.ts").write_text("three", encoding="utf-8")
    await tracker.on_change("a.ts")

    assert tracker.state_of("a.ts") is DriftState.MODIFIED
    assert len(seen) == 1


@pytest.mark.anyio
async def test_delete_with_baseline_is_deleted(make_root) -> None:
    root = make_root(baseline={"a.ts": "a"}, working={"a.ts": "changed"})
    tracker, seen = _tracker(root)
    await tracker.initial_scan()

    (root / "a.ts").unlink()
    await tracker.on_delete(root / "a.ts")

    assert tracker.state_of("a.ts") is DriftState.DELETED
    assert [(n.kind, n.current) for n in seen] == [
        ("added", DriftState.MODIFIED),
        ("updated", DriftState.DELETED),
    ]


@pytest.mark.anyio
async def test_delete_without_baseline_is_dropped(make_root) -> None:
    root = make_root()
    tracker, seen = _tracker(root)

    (root / "temp.ts").write_text("x", encoding="utf-8")
    await tracker.on_create("temp.ts")
    (root / "temp.ts").unlink()
    await tracker.on_delete("temp.ts")

    assert tracker.changes == {}
    assert tracker.state_of("temp.ts") is None
    assert [n.kind for n in seen] == ["added", "removed"]


@pytest.mark.anyio
async def test_delete_of_never_seen_script_emits_nothing(make_root) -> None:
    root = make_root()
    tracker, seen = _tracker(root)

    await tracker.on_delete("ghost.ts")

    assert seen == []


@pytest.mark.anyio
async def test_recreating_deleted_script_with_same_bytes_is_unmodified(
    make_root,
) -> None:
    root = make_root(baseline={"a.ts": "same"})
    tracker, _ = _tracker(root)
    await tracker.initial_scan()
    assert tracker.state_of("a.ts") is DriftState.DELETED

    (root / "a.ts").write_text("same", encoding="utf-8")
    await tracker.on_create("a.ts")

    assert tracker.changes == {}


@pytest.mark.anyio
async def test_transient_read_failure_keeps_last_state(
    make_root, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = make_root(baseline={"a.ts": "a"}, working={"a.ts": "edited"})
    tracker, seen = _tracker(root)
    await tracker.on_change("a.ts")
    assert tracker.state_of("a.ts") is DriftState.MODIFIED

    real_hash_file = tracker_module.hash_file
    working = root / "a.ts"

    def _flaky_hash(path: Path) -> str:
        if path == working:
            raise PermissionError("locked by editor")
        return real_hash_file(path)

    monkeypatch.setattr(tracker_module, "hash_file", _flaky_hash)
    working.write_text("a", encoding="utf-8")

    assert await tracker.classify("a.ts") is DriftState.MODIFIED
    assert tracker.state_of("a.ts") is DriftState.MODIFIED
    assert len(seen) == 1


@pytest.mark.anyio
async def test_unreadable_baseline_counts_as_created(
    make_root, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = make_root(baseline={"a.ts": "a"}, working={"a.ts": "a"})
    tracker, _ = _tracker(root)

    def _no_baseline(_rel: str):
        raise FileNotFoundError("gone")

    monkeypatch.setattr(tracker, "_read_baseline_hash", _no_baseline)

    assert await tracker.classify("a.ts") is DriftState.CREATED


@pytest.mark.anyio
async def test_rewritten_baseline_is_rehashed(make_root) -> None:
    root = make_root(baseline={"a.ts": "v1"}, working={"a.ts": "v2"})
    tracker, _ = _tracker(root)
    await tracker.on_change("a.ts")
    assert tracker.state_of("a.ts") is DriftState.MODIFIED

    _rewrite(root / ".botloader" / "scripts" / "a.ts.bloader", "v2")
    await tracker.on_change("a.ts")

    assert tracker.changes == {}


@pytest.mark.anyio
async def test_change_set_keeps_insertion_order_on_update(make_root) -> None:
    root = make_root(baseline={"a.ts": "a", "b.ts": "b"})
    tracker, _ = _tracker(root)
    await tracker.initial_scan()
    assert list(tracker.changes) == ["a.ts", "b.ts"]

    (root / "a.ts").write_text("different", encoding="utf-8")
    await tracker.on_create("a.ts")

    assert list(tracker.changes.items()) == [
        ("a.ts", DriftState.MODIFIED),
        ("b.ts", DriftState.DELETED),
    ]


@pytest.mark.anyio
async def test_baseline_content_serves_diff_source(make_root) -> None:
    root = make_root(baseline={"a.ts": "original"}, working={"a.ts": "edited"})
    tracker, _ = _tracker(root)

    assert await tracker.baseline_content("a.ts") == "original"
    assert await tracker.baseline_content("missing.ts") is None
    assert await tracker.baseline_content("../escape.ts") is None


@pytest.mark.anyio
async def test_classify_rejects_paths_outside_the_root(make_root, tmp_path) -> None:
    root = make_root()
    tracker, _ = _tracker(root)

    with pytest.raises(ValueError):
        await tracker.classify(tmp_path / "elsewhere.ts")
    with pytest.raises(ValueError):
        await tracker.classify("nested/dir.ts")


@pytest.mark.anyio
async def test_disposed_tracker_ignores_late_results(make_root) -> None:
    root = make_root(baseline={"a.ts": "a"}, working={"a.ts": "b"})
    tracker, seen = _tracker(root)

    pending = asyncio.ensure_future(tracker.classify("a.ts"))
    tracker.dispose()
    await pending
    await tracker.on_delete("a.ts")

    assert tracker.disposed is True
    assert tracker.changes == {}
    assert seen == []


def test_hash_bytes_matches_file_hash(tmp_path: Path) -> None:
    path = tmp_path / "x.ts"
    path.write_bytes(b"export {}\n")
    assert tracker_module.hash_file(path) == hash_bytes(b"export {}\n")


@pytest.mark.anyio
async def test_slow_scan_result_does_not_override_newer_watch_event(
    make_root, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = make_root(baseline={"a.ts": "old"}, working={"a.ts": "old"})
    tracker, _ = _tracker(root)
    working = root / "a.ts"
    real_hash_file = tracker_module.hash_file
    hashing_started = threading.Event()
    release = threading.Event()

    def _held_hash(path: Path) -> str:
        if path == working and not hashing_started.is_set():
            digest = real_hash_file(path)
            hashing_started.set()
            release.wait(timeout=5)
            return digest
        return real_hash_file(path)

    monkeypatch.setattr(tracker_module, "hash_file", _held_hash)

    scan = asyncio.ensure_future(tracker.initial_scan())
    while not hashing_started.is_set():
        await asyncio.sleep(0.005)
    working.write_text("new", encoding="utf-8")
    await tracker.on_change("a.ts")
    assert tracker.state_of("a.ts") is DriftState.MODIFIED

    release.set()
    await scan

    assert tracker.state_of("a.ts") is DriftState.MODIFIED


@pytest.mark.anyio
async def test_event_worker_exits_without_a_queue(make_root) -> None:
    root = make_root()
    tracker, _ = _tracker(root)

    await asyncio.wait_for(tracker._drain_events(), timeout=1)
