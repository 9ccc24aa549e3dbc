from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..agents.profiles import AgentProfile, AgentProfileStore
from ..agents.usage import AgentUsageSink
from ..core.config import OrchestrationSettings
from ..core.errors import AssistantAPIError
from ..core.logging import bind_turn_context, clear_turn_context, get_logger
from ..core.metrics import (
    TURNS_ACTIVE_GAUGE,
    increment_non_fatal_failure,
    increment_run_failure,
    observe_poll_attempts,
    observe_turn,
)
from ..schemas.turns import TurnRequest
from ..services.assistant import AssistantClient
from ..tools.registry import ToolContext, ToolRouter
from .enums import RunStatus, SessionStatus
from .failures import FailureVerdict, classify_run_failure, is_rate_limit, rate_limit_verdict, timeout_verdict
from .state import ConversationDelta, RunSnapshot, SessionKey, UserContact, UserContext
from .store import ConversationStateStore

logger = get_logger(name=__name__)

NO_RESPONSE = "No response"

Sleep = Callable[[float], Awaitable[None]]


def priming_message(user_context: UserContext) -> str:
    return (
        "[SYSTEM CONTEXT] The user is signed in. "
        f"Name: {user_context.name}. Email: {user_context.email}. "
        "Do not ask for their name or email and do not call request_contact_info; "
        "use these details when generating the document."
    )


@dataclass(slots=True)
class TurnOutcome:
    session_id: str | None
    final_message: str | None = None
    run_status: RunStatus | None = None
    run_id: str | None = None
    verdict: FailureVerdict | None = None

    @property
    def succeeded(self) -> bool:
        return self.verdict is None

    @property
    def conversation_complete(self) -> bool:
        return self.run_status is RunStatus.COMPLETED

    @property
    def label(self) -> str:
        return "completed" if self.verdict is None else self.verdict.category.value


@dataclass(slots=True)
class _PollProgress:
    """Last snapshot seen while polling; survives cancellation by the turn deadline."""

    latest: RunSnapshot
    settled: bool = False


class TurnOrchestrator:
    """Drives one user turn against the assistants API.

    A turn resolves the agent, resumes or creates the thread, submits the user
    message, starts a run and polls it until it settles, answering tool calls
    along the way. Run failures and timeouts are returned as verdicts; store and
    transport failures propagate.
    """

    def __init__(
        self,
        *,
        assistant: AssistantClient,
        store: ConversationStateStore,
        profiles: AgentProfileStore,
        router: ToolRouter,
        usage: AgentUsageSink,
        settings: OrchestrationSettings | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._assistant = assistant
        self._store = store
        self._profiles = profiles
        self._router = router
        self._usage = usage
        self._settings = settings or OrchestrationSettings()
        self._sleep: Sleep = sleep or asyncio.sleep

    def tools(self) -> list[str]:
        return self._router.list()

    async def execute_turn(self, request: TurnRequest) -> TurnOutcome:
        started = time.perf_counter()
        bind_turn_context(agent_id=request.agent_id, thread_id=request.session_id)
        try:
            with TURNS_ACTIVE_GAUGE.track_inprogress():
                profile = await self._profiles.require(request.agent_id)
                outcome = await self._run_turn(request, profile)
            await self._record_usage(profile, outcome)
            observe_turn(outcome=outcome.label, latency=time.perf_counter() - started)
            logger.info(
                "turn_finished",
                outcome=outcome.label,
                run_status=outcome.run_status.value if outcome.run_status else None,
                latency=time.perf_counter() - started,
            )
            return outcome
        finally:
            clear_turn_context()

    async def _run_turn(self, request: TurnRequest, profile: AgentProfile) -> TurnOutcome:
        user_context = request.user_context
        thread_id = request.session_id
        try:
            if thread_id:
                key = SessionKey(thread_id=thread_id, agent_id=profile.agent_id)
                await self._store.reconcile(key)
            else:
                thread_id = await self._assistant.create_thread()
                key = SessionKey(thread_id=thread_id, agent_id=profile.agent_id)
                bind_turn_context(thread_id=thread_id)
                logger.info("thread_created")
                if user_context is not None and user_context.has_identity:
                    await self._prime_identity(key, user_context)

            await self._assistant.add_message(thread_id, request.last_message.content)
            run = await self._assistant.create_run(thread_id, profile.assistant_id)
            bind_turn_context(run_id=run.run_id)
            context = ToolContext(key=key, profile=profile, user_context=user_context)

            progress = _PollProgress(latest=run)
            deadline = self._settings.turn_deadline_seconds
            try:
                if deadline is not None:
                    await asyncio.wait_for(self._poll(thread_id, context, progress), timeout=deadline)
                else:
                    await self._poll(thread_id, context, progress)
            except asyncio.TimeoutError:
                logger.warning("turn_deadline_exceeded", deadline_seconds=deadline)

            snapshot = progress.latest
            if not progress.settled:
                verdict = timeout_verdict()
                increment_run_failure(category=verdict.category.value)
                logger.error(
                    "run_poll_timeout",
                    max_attempts=self._settings.max_poll_attempts,
                    last_status=snapshot.status.value,
                )
                await self._persist_result(key, snapshot, user_context, last_message=verdict.message)
                return TurnOutcome(
                    session_id=thread_id,
                    run_status=snapshot.status,
                    run_id=snapshot.run_id,
                    verdict=verdict,
                )

            if snapshot.status.is_failure:
                verdict = classify_run_failure(
                    snapshot.status,
                    snapshot.error_message,
                    snapshot.error_code,
                    retry_after=self._settings.rate_limit_retry_after_seconds,
                )
                increment_run_failure(category=verdict.category.value)
                logger.error(
                    "run_failed",
                    status=snapshot.status.value,
                    category=verdict.category.value,
                    error=snapshot.error_message,
                    code=snapshot.error_code,
                )
                await self._persist_result(key, snapshot, user_context, last_message=verdict.message)
                return TurnOutcome(
                    session_id=thread_id,
                    run_status=snapshot.status,
                    run_id=snapshot.run_id,
                    verdict=verdict,
                )

            message = await self._assistant.latest_message(thread_id) or NO_RESPONSE
            await self._persist_result(key, snapshot, user_context, last_message=message)
            return TurnOutcome(
                session_id=thread_id,
                final_message=message,
                run_status=snapshot.status,
                run_id=snapshot.run_id,
            )
        except AssistantAPIError as exc:
            if not (exc.is_rate_limited or is_rate_limit(str(exc))):
                raise
            verdict = rate_limit_verdict(retry_after=self._settings.rate_limit_retry_after_seconds)
            increment_run_failure(category=verdict.category.value)
            logger.warning("assistant_rate_limited", status_code=exc.status_code, error=str(exc))
            return TurnOutcome(session_id=thread_id, verdict=verdict)

    async def _prime_identity(self, key: SessionKey, user_context: UserContext) -> None:
        await self._assistant.add_message(key.thread_id, priming_message(user_context))
        await self._store.merge_write(
            key,
            ConversationDelta(
                user_contact=UserContact(
                    name=user_context.name or "",
                    email=user_context.email or "",
                    authenticated=True,
                )
            ),
        )
        logger.info("thread_primed_with_identity")

    async def _poll(self, thread_id: str, context: ToolContext, progress: _PollProgress) -> None:
        """Poll until the run settles or the attempt cap is spent, recording each snapshot in ``progress``."""
        max_attempts = self._settings.max_poll_attempts
        attempts = 0
        while attempts < max_attempts:
            await self._sleep(self._settings.poll_interval_seconds)
            attempts += 1
            current = await self._assistant.get_run(thread_id, progress.latest.run_id)
            progress.latest = current
            if current.status.is_terminal:
                progress.settled = True
                observe_poll_attempts(status=current.status.value, attempts=attempts)
                logger.info("run_settled", status=current.status.value, attempts=attempts)
                return
            if current.status is RunStatus.REQUIRES_ACTION and current.tool_calls:
                logger.info("run_requires_action", tool_calls=[call.name for call in current.tool_calls])
                outputs = await self._router.dispatch_batch(current.tool_calls, context)
                await self._assistant.submit_tool_outputs(thread_id, current.run_id, outputs)
        observe_poll_attempts(status="timeout", attempts=attempts)

    async def _persist_result(
        self,
        key: SessionKey,
        snapshot: RunSnapshot,
        user_context: UserContext | None,
        *,
        last_message: str | None,
    ) -> None:
        await self._store.reconcile(key)
        contact = None
        if user_context is not None and user_context.has_identity:
            contact = UserContact(
                name=user_context.name or "",
                email=user_context.email or "",
                authenticated=True,
            )
        await self._store.merge_write(
            key,
            ConversationDelta(
                last_message=last_message,
                run_status=snapshot.status,
                run_id=snapshot.run_id,
                status=SessionStatus.COMPLETED if snapshot.status is RunStatus.COMPLETED else SessionStatus.ACTIVE,
                user_contact=contact,
            ),
        )

    async def _record_usage(self, profile: AgentProfile, outcome: TurnOutcome) -> None:
        try:
            await self._usage.record(profile.agent_id, succeeded=outcome.conversation_complete)
        except Exception as exc:  # usage counters never fail a turn
            increment_non_fatal_failure(operation="usage_update")
            logger.warning("non_fatal", operation="usage_update", agent_id=profile.agent_id, error=str(exc))


__all__ = ["NO_RESPONSE", "TurnOrchestrator", "TurnOutcome", "priming_message"]
