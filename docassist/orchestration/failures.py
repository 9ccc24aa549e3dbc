from __future__ import annotations

from dataclasses import dataclass

from .enums import FailureCategory, RunStatus

DEFAULT_RETRY_AFTER_SECONDS = 60

_RATE_LIMIT_CODES = frozenset({"rate_limit_exceeded", "rate_limit"})


@dataclass(slots=True, frozen=True)
class FailureVerdict:
    category: FailureCategory
    error: str
    message: str
    retryable: bool
    status_code: int
    retry_after: int | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"success": False, "error": self.error, "message": self.message}
        if self.retry_after is not None:
            payload["retryAfter"] = self.retry_after
        return payload


def is_rate_limit(error_message: str | None, error_code: str | None = None) -> bool:
    if error_code and error_code.lower() in _RATE_LIMIT_CODES:
        return True
    return bool(error_message and "rate limit" in error_message.lower())


def rate_limit_verdict(*, retry_after: int = DEFAULT_RETRY_AFTER_SECONDS) -> FailureVerdict:
    return FailureVerdict(
        category=FailureCategory.RATE_LIMIT,
        error="rate_limit",
        message="The assistant is receiving too many requests. Please try again shortly.",
        retryable=True,
        status_code=429,
        retry_after=retry_after,
    )


def classify_run_failure(
    status: RunStatus,
    error_message: str | None,
    error_code: str | None = None,
    *,
    retry_after: int = DEFAULT_RETRY_AFTER_SECONDS,
) -> FailureVerdict:
    """Map a run that ended in a failure status to a caller-facing verdict."""
    if is_rate_limit(error_message, error_code):
        return rate_limit_verdict(retry_after=retry_after)
    return FailureVerdict(
        category=FailureCategory.FATAL,
        error=f"run_{status.value}",
        message=error_message or "Unknown error",
        retryable=False,
        status_code=500,
    )


def timeout_verdict() -> FailureVerdict:
    return FailureVerdict(
        category=FailureCategory.TIMEOUT,
        error="timeout",
        message="The assistant took too long to respond. Please try again.",
        retryable=True,
        status_code=504,
    )


__all__ = [
    "DEFAULT_RETRY_AFTER_SECONDS",
    "FailureVerdict",
    "classify_run_failure",
    "is_rate_limit",
    "rate_limit_verdict",
    "timeout_verdict",
]
