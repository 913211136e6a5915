"""Change notifications published by trackers and consumed by UI providers.

A single ``ChangeDispatcher`` is constructed by the composition root and passed
to every tracker (publisher) and provider (subscriber) that needs it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal, Optional

from ..core.logging_utils import log_event
from .states import DriftState

ChangeKind = Literal["added", "updated", "removed"]


@dataclass(frozen=True)
class ChangeNotification:
    root: Path
    path: str
    kind: ChangeKind
    previous: Optional[DriftState]
    current: Optional[DriftState]


ChangeListener = Callable[[ChangeNotification], None]


class Subscription:
    """Handle returned by subscribe calls; ``dispose()`` is idempotent."""

    def __init__(self, on_dispose: Callable[[], None]) -> None:
        self._on_dispose: Optional[Callable[[], None]] = on_dispose

    @property
    def disposed(self) -> bool:
        return self._on_dispose is None

    def dispose(self) -> None:
        callback = self._on_dispose
        self._on_dispose = None
        if callback is not None:
            callback()


class ChangeDispatcher:
    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._listeners: dict[int, tuple[Optional[Path], ChangeListener]] = {}
        self._next_id = 0

    def subscribe(
        self, listener: ChangeListener, *, root: Optional[Path] = None
    ) -> Subscription:
        """Register ``listener``; when ``root`` is set only that root's changes are delivered."""
        listener_id = self._next_id
        self._next_id += 1
        self._listeners[listener_id] = (root, listener)
        return Subscription(lambda: self._listeners.pop(listener_id, None))

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, notification: ChangeNotification) -> None:
        for root, listener in list(self._listeners.values()):
            if root is not None and root != notification.root:
                continue
            try:
                listener(notification)
            except Exception as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "workspace.notification.listener_failed",
                    root=str(notification.root),
                    path=notification.path,
                    exc=exc,
                )
