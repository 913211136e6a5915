from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from watchdog.observers.api import BaseObserver

from ..core.logging_utils import log_event
from .layout import DEFAULT_SCRIPT_SUFFIX, index_path
from .notifications import ChangeDispatcher, Subscription
from .tracker import ChangeTracker

ProviderFactory = Callable[[ChangeTracker], Iterable[Subscription]]


@dataclass
class _AttachedRoot:
    tracker: ChangeTracker
    providers: list[Subscription] = field(default_factory=list)

    def dispose(self) -> None:
        self.tracker.dispose()
        for subscription in self.providers:
            subscription.dispose()
        self.providers.clear()


class WorkspaceRegistry:
    """Owns one ChangeTracker per attached root.

    Only folders carrying the index marker qualify; anything else is skipped
    without error. ``provider_factories`` are invoked for every new tracker and
    the subscriptions they return are disposed together with the root.
    """

    def __init__(
        self,
        dispatcher: ChangeDispatcher,
        *,
        logger: Optional[logging.Logger] = None,
        observer: Optional[BaseObserver] = None,
        provider_factories: Iterable[ProviderFactory] = (),
        script_suffix: str = DEFAULT_SCRIPT_SUFFIX,
    ) -> None:
        self._dispatcher = dispatcher
        self._logger = logger or logging.getLogger(__name__)
        self._observer = observer
        self._provider_factories = list(provider_factories)
        self._script_suffix = script_suffix
        self._roots: dict[Path, _AttachedRoot] = {}
        self._attaching: set[Path] = set()
        self._disposed = False

    @property
    def dispatcher(self) -> ChangeDispatcher:
        return self._dispatcher

    @property
    def roots(self) -> list[Path]:
        return list(self._roots)

    def tracker_for(self, root: Path) -> Optional[ChangeTracker]:
        attached = self._roots.get(_root_key(root))
        return attached.tracker if attached else None

    async def attach_root(self, root: Path) -> Optional[ChangeTracker]:
        key = _root_key(root)
        if self._disposed:
            return None
        existing = self._roots.get(key)
        if existing is not None:
            return existing.tracker
        if key in self._attaching:
            return None
        self._attaching.add(key)
        try:
            is_managed = await asyncio.to_thread(index_path(key).is_file)
            if not is_managed:
                log_event(
                    self._logger,
                    logging.DEBUG,
                    "workspace.root.skipped",
                    root=str(key),
                    reason="missing_index",
                )
                return None
            if self._disposed:
                return None
            tracker = ChangeTracker(
                key,
                dispatcher=self._dispatcher,
                logger=self._logger,
                script_suffix=self._script_suffix,
            )
            attached = _AttachedRoot(tracker=tracker)
            try:
                for factory in self._provider_factories:
                    attached.providers.extend(factory(tracker))
                if self._observer is not None:
                    tracker.start(self._observer)
            except Exception as exc:
                attached.dispose()
                log_event(
                    self._logger,
                    logging.WARNING,
                    "workspace.root.attach_failed",
                    root=str(key),
                    exc=exc,
                )
                return None
            self._roots[key] = attached
        finally:
            self._attaching.discard(key)

        log_event(self._logger, logging.INFO, "workspace.root.attached", root=str(key))
        await tracker.initial_scan()
        return tracker

    def detach_root(self, root: Path) -> bool:
        attached = self._roots.pop(_root_key(root), None)
        if attached is None:
            return False
        attached.dispose()
        log_event(
            self._logger,
            logging.INFO,
            "workspace.root.detached",
            root=str(attached.tracker.root),
        )
        return True

    async def on_roots_changed(
        self, added: Iterable[Path], removed: Iterable[Path]
    ) -> None:
        for root in added:
            await self.attach_root(root)
        for root in removed:
            self.detach_root(root)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        for key in list(self._roots):
            self.detach_root(key)


def _root_key(root: Path) -> Path:
    return Path(root).expanduser().resolve()
