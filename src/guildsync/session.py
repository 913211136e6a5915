from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional

from watchdog.observers.api import BaseObserver

from .core.config import SyncConfig
from .core.logging_utils import log_event
from .integrations.logstream.client import EventStreamClient
from .integrations.logstream.events import LogSink
from .workspace.notifications import ChangeDispatcher, ChangeListener
from .workspace.registry import ProviderFactory, WorkspaceRegistry
from .workspace.setup import WorkspaceSetupError, guild_id_for_root


class SyncSession:
    """Composition root: one registry of script folders plus one log stream.

    Attaching a folder subscribes to its guild's logs; detaching unsubscribes.
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        on_change: ChangeListener,
        on_log: LogSink,
        logger: logging.Logger,
        observer: Optional[BaseObserver] = None,
        provider_factories: Iterable[ProviderFactory] = (),
    ) -> None:
        self._logger = logger
        self.dispatcher = ChangeDispatcher(logger=logger)
        self.registry = WorkspaceRegistry(
            self.dispatcher,
            logger=logger,
            observer=observer,
            provider_factories=provider_factories,
            script_suffix=config.script_suffix,
        )
        self.client = EventStreamClient(
            url=config.ws_url,
            sink=on_log,
            logger=logger,
            token=config.token,
            reconnect_delay_seconds=config.logstream.reconnect_delay_seconds,
            resubscribe_on_reconnect=config.logstream.resubscribe_on_reconnect,
        )
        self._change_subscription = self.dispatcher.subscribe(on_change)
        self._root_guilds: dict[Path, str] = {}

    async def start(
        self, roots: Iterable[Path], *, guild_ids: Iterable[str] = ()
    ) -> None:
        self.client.start()
        await self.add_roots(roots)
        for guild_id in guild_ids:
            await self.client.subscribe_guild(guild_id)

    async def add_roots(self, roots: Iterable[Path]) -> None:
        for root in roots:
            tracker = await self.registry.attach_root(root)
            if tracker is None or tracker.root in self._root_guilds:
                continue
            try:
                guild_id = await asyncio.to_thread(guild_id_for_root, tracker.root)
            except WorkspaceSetupError as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "session.root.guild_unknown",
                    root=str(tracker.root),
                    exc=exc,
                )
                continue
            if guild_id is None:
                continue
            shared = guild_id in self._root_guilds.values()
            self._root_guilds[tracker.root] = guild_id
            if not shared:
                await self.client.subscribe_guild(guild_id)

    async def remove_roots(self, roots: Iterable[Path]) -> None:
        for root in roots:
            tracker = self.registry.tracker_for(root)
            if tracker is None:
                continue
            self.registry.detach_root(tracker.root)
            guild_id = self._root_guilds.pop(tracker.root, None)
            if guild_id is not None and guild_id not in self._root_guilds.values():
                await self.client.unsubscribe_guild(guild_id)

    async def stop(self) -> None:
        self.registry.dispose()
        self._change_subscription.dispose()
        self._root_guilds.clear()
        await self.client.close()
