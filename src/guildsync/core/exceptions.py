from __future__ import annotations


class GuildSyncError(Exception):
    """Base error for guildsync."""

    recoverable = True
    severity = "error"


class TransientError(GuildSyncError):
    """Failure expected to clear up on retry (network blips, 5xx, rate limits)."""

    recoverable = True
    severity = "warning"


class PermanentError(GuildSyncError):
    """Failure that retrying will not fix (bad credentials, invalid requests)."""

    recoverable = False
    severity = "error"
