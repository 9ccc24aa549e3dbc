from __future__ import annotations

import pytest

from docassist.orchestration.enums import FailureCategory, RunStatus
from docassist.orchestration.failures import (
    classify_run_failure,
    is_rate_limit,
    rate_limit_verdict,
    timeout_verdict,
)


@pytest.mark.parametrize(
    ("message", "code", "expected"),
    [
        ("Rate limit reached for gpt-4o in organization org-1", None, True),
        ("You exceeded your current quota", "rate_limit_exceeded", True),
        ("Sorry, something went wrong.", "server_error", False),
        (None, None, False),
    ],
)
def test_is_rate_limit(message: str | None, code: str | None, expected: bool) -> None:
    assert is_rate_limit(message, code) is expected


def test_rate_limited_runs_are_retryable_with_retry_after() -> None:
    verdict = classify_run_failure(RunStatus.FAILED, "Rate limit reached", retry_after=30)

    assert verdict.category is FailureCategory.RATE_LIMIT
    assert verdict.retryable
    assert verdict.status_code == 429
    assert verdict.to_payload() == {
        "success": False,
        "error": "rate_limit",
        "message": verdict.message,
        "retryAfter": 30,
    }


@pytest.mark.parametrize("status", [RunStatus.FAILED, RunStatus.CANCELLED, RunStatus.EXPIRED, RunStatus.INCOMPLETE])
def test_other_failures_are_fatal_and_keep_the_upstream_message(status: RunStatus) -> None:
    verdict = classify_run_failure(status, "Sorry, something went wrong.", "server_error")

    assert verdict.category is FailureCategory.FATAL
    assert not verdict.retryable
    assert verdict.status_code == 500
    assert verdict.error == f"run_{status.value}"
    assert verdict.message == "Sorry, something went wrong."
    assert "retryAfter" not in verdict.to_payload()


def test_fatal_failure_without_message_uses_placeholder() -> None:
    assert classify_run_failure(RunStatus.EXPIRED, None).message == "Unknown error"


def test_timeout_and_rate_limit_verdicts() -> None:
    timeout = timeout_verdict()
    assert timeout.category is FailureCategory.TIMEOUT
    assert timeout.status_code == 504
    assert timeout.retryable

    assert rate_limit_verdict().retry_after == 60
