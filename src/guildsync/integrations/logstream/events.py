"""Events delivered to the log stream sink.

Connection lifecycle notices and remote script logs share one sink so a
consumer can render both the same way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union


@dataclass(frozen=True)
class WsNotice:
    """Internal connection diagnostic."""

    message: str
    kind: str = "WS"


@dataclass(frozen=True)
class InfoNotice:
    message: str
    kind: str = "Info"


@dataclass(frozen=True)
class ScriptContext:
    filename: str
    line: Optional[int] = None
    column: Optional[int] = None

    def __str__(self) -> str:
        if self.line is None:
            return self.filename
        if self.column is None:
            return f"{self.filename}:{self.line}"
        return f"{self.filename}:{self.line}:{self.column}"


@dataclass(frozen=True)
class ScriptLog:
    message: str
    guild_id: Optional[str] = None
    script_context: Optional[ScriptContext] = None
    level: Optional[str] = None
    kind: str = "ScriptLog"
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ScriptLog":
        guild_id = payload.get("guild_id")
        level = payload.get("level", payload.get("kind"))
        return cls(
            message=str(payload.get("message", "")),
            guild_id=str(guild_id) if guild_id is not None else None,
            script_context=_parse_script_context(payload),
            level=str(level) if level is not None else None,
            raw=dict(payload),
        )


LogEvent = Union[WsNotice, InfoNotice, ScriptLog]
LogSink = Callable[[LogEvent], None]


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


def _parse_script_context(payload: Mapping[str, Any]) -> Optional[ScriptContext]:
    nested = payload.get("script_context")
    if isinstance(nested, Mapping):
        filename = nested.get("filename")
        if not isinstance(filename, str) or not filename:
            return None
        line_col = nested.get("line_col")
        line = _optional_int(nested.get("line"))
        column = _optional_int(nested.get("column"))
        if isinstance(line_col, (list, tuple)) and len(line_col) == 2:
            line, column = _optional_int(line_col[0]), _optional_int(line_col[1])
        return ScriptContext(filename=filename, line=line, column=column)

    # Older servers flatten the context into the log item.
    filename = payload.get("filename")
    if not isinstance(filename, str) or not filename:
        return None
    return ScriptContext(
        filename=filename,
        line=_optional_int(payload.get("linenumber", payload.get("line"))),
        column=_optional_int(payload.get("column")),
    )


def format_log_event(event: LogEvent) -> str:
    if isinstance(event, ScriptLog):
        prefix = f"[{event.level}] " if event.level else ""
        location = f"{event.script_context}: " if event.script_context else ""
        guild = f"({event.guild_id}) " if event.guild_id else ""
        return f"{guild}{prefix}{location}{event.message}"
    return f"[{event.kind}] {event.message}"
