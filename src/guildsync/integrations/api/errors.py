from __future__ import annotations

from typing import Optional

from ...core.exceptions import GuildSyncError, PermanentError, TransientError


class ScriptsApiError(GuildSyncError):
    """Scripts API request error."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ScriptsApiTransientError(ScriptsApiError, TransientError):
    """Retryable scripts API error (5xx, network issues)."""


class ScriptsApiPermanentError(ScriptsApiError, PermanentError):
    """Non-retryable scripts API error (bad token, missing permissions)."""

    recoverable = PermanentError.recoverable
    severity = PermanentError.severity
