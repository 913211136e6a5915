"""Live script log stream client."""

from .client import ConnectionState, EventStreamClient
from .errors import LogStreamError, LogStreamProtocolError
from .events import (
    InfoNotice,
    LogEvent,
    LogSink,
    ScriptContext,
    ScriptLog,
    WsNotice,
    format_log_event,
)
from .frames import (
    AuthSuccess,
    InboundFrame,
    ScriptLogMessage,
    SubscriptionsUpdated,
    UnknownFrame,
    build_authorize_frame,
    build_subscribe_frame,
    build_unsubscribe_frame,
    parse_frame,
)

__all__ = [
    "AuthSuccess",
    "ConnectionState",
    "EventStreamClient",
    "InboundFrame",
    "InfoNotice",
    "LogEvent",
    "LogSink",
    "LogStreamError",
    "LogStreamProtocolError",
    "ScriptContext",
    "ScriptLog",
    "ScriptLogMessage",
    "SubscriptionsUpdated",
    "UnknownFrame",
    "WsNotice",
    "build_authorize_frame",
    "build_subscribe_frame",
    "build_unsubscribe_frame",
    "format_log_event",
    "parse_frame",
]
