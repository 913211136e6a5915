from __future__ import annotations

from enum import Enum


class DriftState(str, Enum):
    UNMODIFIED = "unmodified"
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"

    @property
    def has_drift(self) -> bool:
        return self is not DriftState.UNMODIFIED
