from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from enum import Enum
from typing import Any, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from ...core.logging_utils import log_event
from .errors import LogStreamProtocolError
from .events import LogEvent, LogSink, WsNotice
from .frames import (
    AuthSuccess,
    ScriptLogMessage,
    SubscriptionsUpdated,
    build_authorize_frame,
    build_subscribe_frame,
    build_unsubscribe_frame,
    encode_frame,
    parse_frame,
)

DEFAULT_RECONNECT_DELAY_SECONDS = 1.0


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_AUTH = "awaiting_auth"
    AUTHENTICATED = "authenticated"


def close_reason(exc: BaseException) -> str:
    code = getattr(exc, "code", None)
    received = getattr(exc, "rcvd", None)
    if not isinstance(code, int) and received is not None:
        code = getattr(received, "code", None)
    reason = getattr(received, "reason", "") if received is not None else ""
    if isinstance(code, int):
        return f"code={code} {reason}".strip()
    return str(exc) or type(exc).__name__


class EventStreamClient:
    """Single auto-reconnecting connection to the live log stream.

    Every ``open()`` starts a new generation. Messages and close events from an
    older generation are ignored, so replacing the connection never triggers a
    duplicate reconnect. Subscriptions requested before the server confirms
    authorization are queued and flushed in order once it does.
    """

    def __init__(
        self,
        *,
        url: str,
        sink: LogSink,
        logger: logging.Logger,
        token: Optional[str] = None,
        reconnect_delay_seconds: float = DEFAULT_RECONNECT_DELAY_SECONDS,
        resubscribe_on_reconnect: bool = False,
    ) -> None:
        self._url = url
        self._sink = sink
        self._logger = logger
        self._token = token
        self._reconnect_delay_seconds = reconnect_delay_seconds
        self._resubscribe_on_reconnect = resubscribe_on_reconnect
        self._state = ConnectionState.DISCONNECTED
        self._generation = 0
        self._websocket: Any = None
        self._connection_task: Optional[asyncio.Task[None]] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._pending: deque[str] = deque()
        self._active: list[str] = []
        self._closed = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending_subscriptions(self) -> tuple[str, ...]:
        return tuple(self._pending)

    @property
    def active_subscriptions(self) -> tuple[str, ...]:
        return tuple(self._active)

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_handle is not None

    def start(self) -> None:
        if self._token:
            self.open()

    def open(self) -> None:
        if self._closed:
            log_event(self._logger, logging.DEBUG, "logstream.open.ignored_closed")
            return
        self._cancel_reconnect()
        self._abandon_connection()
        self._generation += 1
        generation = self._generation
        self._state = ConnectionState.CONNECTING
        self._notice(f"opening connection to {self._url}")
        self._connection_task = asyncio.get_running_loop().create_task(
            self._run_connection(generation)
        )

    def set_token(self, token: str) -> None:
        self._token = token
        self._notice("token updated")
        self.open()

    async def close(self) -> None:
        self._closed = True
        self._cancel_reconnect()
        self._generation += 1
        task = self._connection_task
        self._connection_task = None
        websocket = self._websocket
        self._websocket = None
        self._state = ConnectionState.DISCONNECTED
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if websocket is not None:
            with contextlib.suppress(Exception):
                await websocket.close()
        log_event(self._logger, logging.INFO, "logstream.closed")

    async def subscribe_guild(self, guild_id: str) -> None:
        if self._state is not ConnectionState.AUTHENTICATED:
            self._notice(f"not authorized yet, queueing subscription to {guild_id}")
            self._pending.append(guild_id)
            return
        await self._subscribe_now(guild_id)

    async def unsubscribe_guild(self, guild_id: str) -> None:
        if guild_id in self._pending:
            self._pending = deque(item for item in self._pending if item != guild_id)
            self._notice(f"dropped queued subscription to {guild_id}")
        if guild_id in self._active:
            self._active.remove(guild_id)
        if self._state is ConnectionState.AUTHENTICATED:
            self._notice(f"unsubscribing from {guild_id}")
            await self._send(build_unsubscribe_frame(guild_id))

    async def _subscribe_now(self, guild_id: str) -> bool:
        self._notice(f"subscribing to {guild_id}")
        sent = await self._send(build_subscribe_frame(guild_id))
        if sent and guild_id not in self._active:
            self._active.append(guild_id)
        return sent

    async def _send(self, frame: dict[str, Any]) -> bool:
        websocket = self._websocket
        if websocket is None:
            log_event(
                self._logger,
                logging.DEBUG,
                "logstream.send.skipped",
                frame=frame.get("t"),
                reason="disconnected",
            )
            return False
        try:
            await websocket.send(encode_frame(frame))
        except ConnectionClosed as exc:
            log_event(
                self._logger,
                logging.DEBUG,
                "logstream.send.skipped",
                frame=frame.get("t"),
                reason=close_reason(exc),
            )
            return False
        return True

    async def _run_connection(self, generation: int) -> None:
        reason = "closed"
        try:
            async with websockets.connect(self._url) as websocket:
                if generation != self._generation:
                    return
                self._websocket = websocket
                self._state = ConnectionState.AWAITING_AUTH
                if self._token:
                    self._notice("authorizing")
                    await self._send(build_authorize_frame(self._token))
                async for raw_message in websocket:
                    if generation != self._generation:
                        return
                    await self._on_message(raw_message, generation)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as exc:
            reason = close_reason(exc)
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            log_event(
                self._logger,
                logging.WARNING,
                "logstream.connection.error",
                url=self._url,
                exc=exc,
            )
        if generation == self._generation:
            self._on_close(reason)

    async def _on_message(self, raw_message: Any, generation: int) -> None:
        try:
            frame = parse_frame(raw_message)
        except LogStreamProtocolError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "logstream.frame.malformed",
                exc=exc,
            )
            return

        if isinstance(frame, AuthSuccess):
            self._state = ConnectionState.AUTHENTICATED
            self._notice("successfully authorized")
            await self._flush_pending(generation)
        elif isinstance(frame, SubscriptionsUpdated):
            self._notice(f"subscriptions updated: {', '.join(frame.guild_ids)}")
        elif isinstance(frame, ScriptLogMessage):
            self._emit(frame.item)
        else:
            log_event(
                self._logger,
                logging.WARNING,
                "logstream.frame.unknown_tag",
                tag=frame.tag,
            )

    async def _flush_pending(self, generation: int) -> None:
        if self._resubscribe_on_reconnect:
            for guild_id in list(self._active):
                if generation != self._generation:
                    return
                if guild_id in self._pending:
                    continue
                if not await self._subscribe_now(guild_id):
                    return
        while self._pending:
            if generation != self._generation:
                return
            guild_id = self._pending[0]
            if not await self._subscribe_now(guild_id):
                # Still queued; the next generation retries it.
                return
            if self._pending and self._pending[0] == guild_id:
                self._pending.popleft()

    def _on_close(self, reason: str) -> None:
        self._websocket = None
        self._connection_task = None
        self._state = ConnectionState.DISCONNECTED
        self._notice(f"connection closed: {reason}")
        if self._closed:
            return
        generation = self._generation
        self._reconnect_handle = asyncio.get_running_loop().call_later(
            self._reconnect_delay_seconds, self._reconnect, generation
        )
        log_event(
            self._logger,
            logging.INFO,
            "logstream.reconnect.scheduled",
            delay_seconds=self._reconnect_delay_seconds,
            generation=generation,
            pending=len(self._pending),
        )

    def _reconnect(self, generation: int) -> None:
        self._reconnect_handle = None
        if self._closed or generation != self._generation:
            return
        self.open()

    def _cancel_reconnect(self) -> None:
        handle = self._reconnect_handle
        self._reconnect_handle = None
        if handle is not None:
            handle.cancel()

    def _abandon_connection(self) -> None:
        task = self._connection_task
        self._connection_task = None
        self._websocket = None
        if task is not None and not task.done():
            task.cancel()

    def _notice(self, message: str) -> None:
        log_event(self._logger, logging.DEBUG, "logstream.notice", message=message)
        self._emit(WsNotice(message=message))

    def _emit(self, event: LogEvent) -> None:
        try:
            self._sink(event)
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "logstream.sink.failed",
                event_kind=event.kind,
                exc=exc,
            )
