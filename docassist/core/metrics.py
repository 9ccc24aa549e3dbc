from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

TURNS_TOTAL = Counter(
    "docassist_turns_total",
    "Conversation turns grouped by final outcome",
    labelnames=("outcome",),
)

TURN_LATENCY_SECONDS = Histogram(
    "docassist_turn_latency_seconds",
    "End-to-end latency of a conversation turn",
    buckets=(0.5, 1, 2, 5, 10, 20, 30, 45, 60, 90, 120, float("inf")),
)

TURNS_ACTIVE_GAUGE = Gauge(
    "docassist_turns_active",
    "Conversation turns currently in flight",
)

RUN_POLL_ATTEMPTS = Histogram(
    "docassist_run_poll_attempts",
    "Status checks performed per run before it settled",
    labelnames=("status",),
    buckets=(1, 2, 3, 5, 8, 13, 21, 34, 60, float("inf")),
)

TOOL_ROUNDS_TOTAL = Counter(
    "docassist_tool_rounds_total",
    "requires_action rounds answered by the tool router",
)

TOOL_INVOCATIONS_TOTAL = Counter(
    "docassist_tool_invocations_total",
    "Tool handler invocations grouped by outcome",
    labelnames=("tool", "outcome"),
)

TOOL_LATENCY_SECONDS = Histogram(
    "docassist_tool_latency_seconds",
    "Latency of tool handler invocations",
    labelnames=("tool",),
)

STATE_RECONCILED_ROWS_TOTAL = Counter(
    "docassist_state_reconciled_rows_total",
    "Duplicate conversation rows removed by reconciliation",
)

STATE_WRITES_TOTAL = Counter(
    "docassist_state_writes_total",
    "Conversation state writes grouped by mode",
    labelnames=("mode",),
)

RUN_FAILURES_TOTAL = Counter(
    "docassist_run_failures_total",
    "Classified run failures grouped by category",
    labelnames=("category",),
)

DOCUMENTS_GENERATED_TOTAL = Counter(
    "docassist_documents_generated_total",
    "Document synthesis attempts grouped by outcome",
    labelnames=("outcome",),
)

UPSTREAM_REQUEST_LATENCY_SECONDS = Histogram(
    "docassist_upstream_request_latency_seconds",
    "Latency of calls to external collaborators",
    labelnames=("service", "operation", "status"),
)

NON_FATAL_FAILURES_TOTAL = Counter(
    "docassist_non_fatal_failures_total",
    "Best-effort side effects that failed without failing the turn",
    labelnames=("operation",),
)


def observe_turn(*, outcome: str, latency: float) -> None:
    TURNS_TOTAL.labels(outcome=outcome).inc()
    TURN_LATENCY_SECONDS.observe(latency)


def observe_poll_attempts(*, status: str, attempts: int) -> None:
    RUN_POLL_ATTEMPTS.labels(status=status).observe(attempts)


def increment_tool_round() -> None:
    TOOL_ROUNDS_TOTAL.inc()


def observe_tool_invocation(*, tool: str, outcome: str, latency: float) -> None:
    TOOL_INVOCATIONS_TOTAL.labels(tool=tool, outcome=outcome).inc()
    TOOL_LATENCY_SECONDS.labels(tool=tool).observe(latency)


def increment_reconciled_rows(count: int) -> None:
    if count:
        STATE_RECONCILED_ROWS_TOTAL.inc(count)


def increment_state_write(*, merge: bool) -> None:
    STATE_WRITES_TOTAL.labels(mode="merge" if merge else "replace").inc()


def increment_run_failure(*, category: str) -> None:
    RUN_FAILURES_TOTAL.labels(category=category).inc()


def increment_document_generation(*, outcome: str) -> None:
    DOCUMENTS_GENERATED_TOTAL.labels(outcome=outcome).inc()


def observe_upstream_request(*, service: str, operation: str, status: int | None, latency: float) -> None:
    status_label = str(status) if status is not None else "error"
    UPSTREAM_REQUEST_LATENCY_SECONDS.labels(service=service, operation=operation, status=status_label).observe(latency)


def increment_non_fatal_failure(*, operation: str) -> None:
    NON_FATAL_FAILURES_TOTAL.labels(operation=operation).inc()
