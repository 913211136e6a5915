from __future__ import annotations

import asyncio
import contextlib
import hashlib
import logging
import os
from pathlib import Path
from typing import Any, Literal, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers.api import BaseObserver, ObservedWatch

from ..core.logging_utils import log_event
from .layout import (
    DEFAULT_SCRIPT_SUFFIX,
    baseline_dir,
    baseline_path,
    is_resource_name,
    normalize_resource_path,
    resource_name_from_baseline,
    working_path,
)
from .notifications import ChangeDispatcher, ChangeKind, ChangeNotification
from .states import DriftState

WatchEventKind = Literal["created", "changed", "deleted"]

_HASH_CHUNK_SIZE = 64 * 1024


def hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_HASH_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class _ScriptEventHandler(FileSystemEventHandler):
    """Forwards watchdog callbacks (observer thread) to the tracker's loop."""

    def __init__(self, tracker: "ChangeTracker") -> None:
        super().__init__()
        self._tracker = tracker

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._tracker.enqueue_threadsafe("created", _fs_path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._tracker.enqueue_threadsafe("changed", _fs_path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._tracker.enqueue_threadsafe("deleted", _fs_path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._tracker.enqueue_threadsafe("deleted", _fs_path(event.src_path))
        self._tracker.enqueue_threadsafe("created", _fs_path(event.dest_path))


def _fs_path(value: Any) -> Path:
    if isinstance(value, bytes):
        return Path(os.fsdecode(value))
    return Path(value)


class ChangeTracker:
    """Classifies drift of one root's scripts against their baseline copies.

    The change-set only holds paths that drifted (created, modified, deleted);
    an unmodified script is absent. Each transition publishes exactly one
    ``ChangeNotification`` on the dispatcher.

    All classification runs on the event loop. File reads happen in worker
    threads and rejoin the loop before state is touched. After ``dispose()``
    every pending or in-flight callback is a no-op.
    """

    def __init__(
        self,
        root: Path,
        *,
        dispatcher: ChangeDispatcher,
        logger: Optional[logging.Logger] = None,
        script_suffix: str = DEFAULT_SCRIPT_SUFFIX,
    ) -> None:
        self._root = root
        self._dispatcher = dispatcher
        self._logger = logger or logging.getLogger(__name__)
        self._script_suffix = script_suffix
        self._changes: dict[str, DriftState] = {}
        # rel path -> ((mtime_ns, size), sha256)
        self._baseline_cache: dict[str, tuple[tuple[int, int], str]] = {}
        # Classification order: a result older than the last applied one is dropped.
        self._sequence = 0
        self._applied_sequence: dict[str, int] = {}
        self._disposed = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue[tuple[WatchEventKind, Path]]] = None
        self._worker: Optional[asyncio.Task[None]] = None
        self._observer: Optional[BaseObserver] = None
        self._watch: Optional[ObservedWatch] = None

    @property
    def root(self) -> Path:
        return self._root

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def changes(self) -> dict[str, DriftState]:
        return dict(self._changes)

    def state_of(self, path: Path | str) -> Optional[DriftState]:
        rel = self._relative(path)
        if rel is None:
            return None
        return self._changes.get(rel)

    # Live watching

    def start(self, observer: BaseObserver) -> None:
        if self._disposed:
            raise RuntimeError(f"tracker for {self._root} is disposed")
        if self._watch is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._worker = self._loop.create_task(self._drain_events())
        self._observer = observer
        self._watch = observer.schedule(
            _ScriptEventHandler(self), str(self._root), recursive=False
        )

    def enqueue_threadsafe(self, kind: WatchEventKind, path: Path) -> None:
        loop = self._loop
        if self._disposed or loop is None:
            return
        try:
            loop.call_soon_threadsafe(self._enqueue, kind, path)
        except RuntimeError:
            # Loop already closed; the root is going away with it.
            log_event(
                self._logger,
                logging.DEBUG,
                "workspace.tracker.event_after_loop_closed",
                root=str(self._root),
                path=str(path),
            )

    def _enqueue(self, kind: WatchEventKind, path: Path) -> None:
        if self._disposed or self._queue is None:
            return
        self._queue.put_nowait((kind, path))

    async def _drain_events(self) -> None:
        queue = self._queue
        if queue is None:
            return
        while not self._disposed:
            kind, path = await queue.get()
            if self._disposed:
                break
            try:
                if kind == "deleted":
                    await self.on_delete(path)
                elif kind == "created":
                    await self.on_create(path)
                else:
                    await self.on_change(path)
            except Exception as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "workspace.tracker.event_failed",
                    root=str(self._root),
                    path=str(path),
                    kind=kind,
                    exc=exc,
                )

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._observer is not None and self._watch is not None:
            with contextlib.suppress(KeyError):
                self._observer.unschedule(self._watch)
        self._watch = None
        self._observer = None
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
        self._worker = None
        self._queue = None
        self._baseline_cache.clear()
        log_event(
            self._logger,
            logging.DEBUG,
            "workspace.tracker.disposed",
            root=str(self._root),
        )

    # Classification

    async def initial_scan(self) -> dict[str, DriftState]:
        try:
            working, baseline = await asyncio.to_thread(self._list_resources)
        except OSError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "workspace.tracker.scan_failed",
                root=str(self._root),
                exc=exc,
            )
            return self.changes
        for rel in sorted(working | baseline):
            if self._disposed:
                break
            await self.classify(rel)
        log_event(
            self._logger,
            logging.INFO,
            "workspace.tracker.scan_complete",
            root=str(self._root),
            working=len(working),
            baseline=len(baseline),
            drifted=len(self._changes),
        )
        return self.changes

    async def on_create(self, path: Path | str) -> None:
        if self._relative(path) is not None:
            await self.classify(path)

    async def on_change(self, path: Path | str) -> None:
        if self._relative(path) is not None:
            await self.classify(path)

    async def on_delete(self, path: Path | str) -> None:
        rel = self._relative(path)
        if rel is None or self._disposed:
            return
        sequence = self._next_sequence()
        has_baseline = await asyncio.to_thread(baseline_path(self._root, rel).is_file)
        if self._disposed:
            return
        if has_baseline:
            self._apply(rel, DriftState.DELETED, sequence)
        else:
            # Never synced: nothing to report as deleted.
            self._apply(rel, None, sequence)

    async def classify(self, path: Path | str) -> DriftState:
        rel = self._relative(path)
        if rel is None:
            raise ValueError(f"{path} is not a tracked script in {self._root}")
        sequence = self._next_sequence()
        try:
            working_hash: Optional[str] = await asyncio.to_thread(
                hash_file, working_path(self._root, rel)
            )
        except FileNotFoundError:
            working_hash = None
        except OSError as exc:
            log_event(
                self._logger,
                logging.DEBUG,
                "workspace.tracker.hash_failed",
                root=str(self._root),
                path=rel,
                exc=exc,
            )
            return self._changes.get(rel, DriftState.UNMODIFIED)

        baseline_hash = await self._baseline_hash(rel)
        if working_hash is None:
            state: Optional[DriftState] = (
                DriftState.DELETED if baseline_hash is not None else None
            )
        elif baseline_hash is None:
            state = DriftState.CREATED
        elif baseline_hash != working_hash:
            state = DriftState.MODIFIED
        else:
            state = DriftState.UNMODIFIED

        if self._disposed:
            return state if state is not None else DriftState.UNMODIFIED
        self._apply(rel, state, sequence)
        return self._changes.get(rel, DriftState.UNMODIFIED)

    async def baseline_content(self, path: Path | str) -> Optional[str]:
        """Return the baseline text for ``path``, used as the diff source."""
        rel = self._relative(path)
        if rel is None:
            return None
        try:
            return await asyncio.to_thread(
                baseline_path(self._root, rel).read_text, encoding="utf-8"
            )
        except OSError:
            return None

    async def _baseline_hash(self, rel: str) -> Optional[str]:
        try:
            signature, digest = await asyncio.to_thread(self._read_baseline_hash, rel)
        except OSError:
            self._baseline_cache.pop(rel, None)
            return None
        self._baseline_cache[rel] = (signature, digest)
        return digest

    def _read_baseline_hash(self, rel: str) -> tuple[tuple[int, int], str]:
        path = baseline_path(self._root, rel)
        stat = path.stat()
        signature = (stat.st_mtime_ns, stat.st_size)
        cached = self._baseline_cache.get(rel)
        if cached is not None and cached[0] == signature:
            return cached
        return signature, hash_file(path)

    def _list_resources(self) -> tuple[set[str], set[str]]:
        working = {
            entry.name
            for entry in os.scandir(self._root)
            if entry.is_file() and is_resource_name(entry.name, self._script_suffix)
        }
        baseline: set[str] = set()
        index_dir = baseline_dir(self._root)
        if index_dir.is_dir():
            for entry in os.scandir(index_dir):
                if not entry.is_file():
                    continue
                name = resource_name_from_baseline(entry.name)
                if name is not None and is_resource_name(name, self._script_suffix):
                    baseline.add(name)
        return working, baseline

    def _relative(self, path: Path | str) -> Optional[str]:
        rel = normalize_resource_path(self._root, path)
        if rel is None or not is_resource_name(rel, self._script_suffix):
            return None
        return rel

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _apply(
        self, rel: str, state: Optional[DriftState], sequence: int
    ) -> None:
        if sequence < self._applied_sequence.get(rel, 0):
            log_event(
                self._logger,
                logging.DEBUG,
                "workspace.tracker.stale_result",
                root=str(self._root),
                path=rel,
                sequence=sequence,
            )
            return
        self._applied_sequence[rel] = sequence
        previous = self._changes.get(rel)
        kind: ChangeKind
        if state is None or state is DriftState.UNMODIFIED:
            if previous is None:
                return
            del self._changes[rel]
            kind = "removed"
        elif previous is None:
            self._changes[rel] = state
            kind = "added"
        elif previous is not state:
            self._changes[rel] = state
            kind = "updated"
        else:
            return
        log_event(
            self._logger,
            logging.DEBUG,
            "workspace.tracker.transition",
            root=str(self._root),
            path=rel,
            previous=previous.value if previous else None,
            current=state.value if state else None,
        )
        self._dispatcher.publish(
            ChangeNotification(
                root=self._root,
                path=rel,
                kind=kind,
                previous=previous,
                current=state,
            )
        )
