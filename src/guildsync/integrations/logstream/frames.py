"""Wire frames for the live log stream.

Every frame is a JSON object ``{"t": <tag>, "d": <payload>}``. Inbound frames
decode into one of the dataclasses below; tags this client does not know
decode into ``UnknownFrame`` so the caller can log and drop them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from .errors import LogStreamProtocolError
from .events import ScriptLog

TAG_AUTHORIZE = "Authorize"
TAG_SUBSCRIBE_LOGS = "SubscribeLogs"
TAG_UNSUBSCRIBE_LOGS = "UnSubscribeLogs"

TAG_AUTH_SUCCESS = "AuthSuccess"
TAG_SUBSCRIPTIONS_UPDATED = "SubscriptionsUpdated"
TAG_SCRIPT_LOG_MESSAGE = "ScriptLogMessage"


@dataclass(frozen=True)
class AuthSuccess:
    user: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SubscriptionsUpdated:
    guild_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScriptLogMessage:
    item: ScriptLog


@dataclass(frozen=True)
class UnknownFrame:
    tag: str
    payload: Any = None


InboundFrame = Union[AuthSuccess, SubscriptionsUpdated, ScriptLogMessage, UnknownFrame]


def build_authorize_frame(token: str) -> dict[str, Any]:
    return {"t": TAG_AUTHORIZE, "d": token}


def build_subscribe_frame(guild_id: str) -> dict[str, Any]:
    return {"t": TAG_SUBSCRIBE_LOGS, "d": guild_id}


def build_unsubscribe_frame(guild_id: str) -> dict[str, Any]:
    return {"t": TAG_UNSUBSCRIBE_LOGS, "d": guild_id}


def encode_frame(frame: dict[str, Any]) -> str:
    return json.dumps(frame, separators=(",", ":"))


def parse_frame(raw: str | bytes | dict[str, Any]) -> InboundFrame:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise LogStreamProtocolError("log stream frame is not valid UTF-8") from exc
    if isinstance(raw, str):
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise LogStreamProtocolError(f"log stream frame is not JSON: {exc}") from exc
    else:
        payload = raw
    if not isinstance(payload, dict):
        raise LogStreamProtocolError("log stream frame must be a JSON object")
    tag = payload.get("t")
    if not isinstance(tag, str):
        raise LogStreamProtocolError(f"log stream frame missing string tag: {payload!r}")
    data = payload.get("d")

    if tag == TAG_AUTH_SUCCESS:
        return AuthSuccess(user=data if isinstance(data, dict) else {})
    if tag == TAG_SUBSCRIPTIONS_UPDATED:
        ids = data if isinstance(data, list) else []
        return SubscriptionsUpdated(guild_ids=tuple(str(item) for item in ids))
    if tag == TAG_SCRIPT_LOG_MESSAGE:
        if not isinstance(data, dict):
            raise LogStreamProtocolError("ScriptLogMessage payload must be an object")
        return ScriptLogMessage(item=ScriptLog.from_payload(data))
    return UnknownFrame(tag=tag, payload=data)
