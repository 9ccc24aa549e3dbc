from __future__ import annotations

from enum import Enum


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"

    @property
    def is_failure(self) -> bool:
        return self in _FAILURE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self is RunStatus.COMPLETED or self in _FAILURE_STATUSES


_FAILURE_STATUSES = frozenset(
    {RunStatus.FAILED, RunStatus.CANCELLED, RunStatus.EXPIRED, RunStatus.INCOMPLETE}
)


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class FailureCategory(str, Enum):
    RATE_LIMIT = "rate_limit"
    FATAL = "fatal"
    TIMEOUT = "timeout"


__all__ = ["FailureCategory", "RunStatus", "SessionStatus"]
