from __future__ import annotations

from ...core.exceptions import GuildSyncError


class LogStreamError(GuildSyncError):
    """Base log stream error."""


class LogStreamProtocolError(LogStreamError):
    """Inbound frame could not be decoded."""
