"""Core runtime primitives."""

from .config import ConfigError, LogConfig, LogStreamConfig, SyncConfig, load_config
from .exceptions import GuildSyncError, PermanentError, TransientError
from .logging_utils import log_event, setup_rotating_logger

__all__ = [
    "ConfigError",
    "GuildSyncError",
    "LogConfig",
    "LogStreamConfig",
    "PermanentError",
    "SyncConfig",
    "TransientError",
    "load_config",
    "log_event",
    "setup_rotating_logger",
]
