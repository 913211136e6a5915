from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .config import LogConfig

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_HANDLER_ATTR = "_guildsync_rotating_handler"


def _coerce_field(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_coerce_field(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _coerce_field(item) for key, item in value.items()}
    return str(value)


def format_event(event: str, **fields: Any) -> str:
    payload: dict[str, Any] = {"event": event}
    exc = fields.pop("exc", None)
    for key, value in fields.items():
        payload[key] = _coerce_field(value)
    if exc is not None:
        payload["error"] = str(exc)
        payload["error_type"] = type(exc).__name__
    return json.dumps(payload, sort_keys=False)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """Emit one structured log line.

    ``event`` is a dotted name such as ``logstream.reconnect.scheduled``. Extra
    keyword fields are rendered as JSON; ``exc=`` is rendered as its message and
    type name.
    """
    if not logger.isEnabledFor(level):
        return
    try:
        message = format_event(event, **fields)
    except (TypeError, ValueError):
        message = f"{event} (unserializable fields)"
    logger.log(level, message)


def setup_rotating_logger(
    name: str, log_config: "LogConfig", *, level: Optional[int] = None
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level if level is not None else log_config.level)
    if getattr(logger, _HANDLER_ATTR, None) is not None:
        return logger
    log_config.path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_config.path,
        maxBytes=log_config.max_bytes,
        backupCount=log_config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(handler)
    setattr(logger, _HANDLER_ATTR, handler)
    return logger
