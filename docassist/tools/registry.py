from __future__ import annotations

import asyncio
import json
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Sequence

from ..agents.profiles import AgentProfile
from ..core.logging import get_logger
from ..core.metrics import increment_tool_round, observe_tool_invocation
from ..orchestration.state import SessionKey, ToolCall, ToolOutput, UserContext
from .exceptions import ToolArgumentsError, ToolConfigurationError

__all__ = [
    "TOOL_ALIASES",
    "ToolContext",
    "ToolHandler",
    "ToolKind",
    "ToolRouter",
    "normalize_tool_name",
    "parse_arguments",
    "resolve_tool_kind",
]

logger = get_logger(name=__name__)

_NAME_PATTERN = re.compile(r"[\\/\s.\-]+")


class ToolKind(str, Enum):
    SEARCH_SOURCES = "search_sources"
    VALIDATE_INFORMATION = "validate_information"
    NORMALIZE_INFORMATION = "normalize_information"
    STORE_COLLECTED_DATA = "store_collected_data"
    GENERATE_DOCUMENT = "generate_document"
    REQUEST_CONTACT_INFO = "request_contact_info"
    REQUEST_CLARIFICATION = "request_clarification"


TOOL_ALIASES: dict[str, ToolKind] = {
    "search_legal_sources": ToolKind.SEARCH_SOURCES,
    "request_user_contact_info": ToolKind.REQUEST_CONTACT_INFO,
}


def normalize_tool_name(name: str) -> str:
    """Return a normalized identifier used for tool lookups."""
    if not isinstance(name, str):
        raise TypeError("Tool name must be a string")
    return _NAME_PATTERN.sub("_", name.strip()).strip("_").lower()


def resolve_tool_kind(name: str) -> ToolKind | None:
    normalized = normalize_tool_name(name)
    alias = TOOL_ALIASES.get(normalized)
    if alias is not None:
        return alias
    try:
        return ToolKind(normalized)
    except ValueError:
        return None


def parse_arguments(name: str, raw: str | None) -> dict[str, Any]:
    if raw is None or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ToolArgumentsError(
            f"Invalid arguments for tool '{name}': {exc.msg}. Send the arguments as a JSON object."
        ) from exc
    if not isinstance(parsed, dict):
        raise ToolArgumentsError(
            f"Invalid arguments for tool '{name}': expected a JSON object, got {type(parsed).__name__}."
        )
    return parsed


@dataclass(slots=True)
class ToolContext:
    """Per-call context handed to every handler."""

    key: SessionKey
    profile: AgentProfile
    user_context: UserContext | None = None

    @property
    def authenticated(self) -> bool:
        return bool(self.user_context and self.user_context.is_authenticated)


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[str]]


class ToolRouter:
    """Routes tool calls requested by a run to their handlers.

    The handler table must cover every :class:`ToolKind`. Each call yields
    exactly one output string; handler failures are reported to the agent in the
    output instead of failing the run.
    """

    def __init__(self, handlers: Mapping[ToolKind, ToolHandler], *, concurrent: bool = False) -> None:
        missing = [kind.value for kind in ToolKind if kind not in handlers]
        if missing:
            raise ToolConfigurationError(f"No handler registered for tools: {', '.join(missing)}")
        self._handlers: dict[ToolKind, ToolHandler] = dict(handlers)
        self._concurrent = concurrent

    def list(self) -> list[str]:
        return sorted(kind.value for kind in self._handlers)

    async def dispatch(self, call: ToolCall, context: ToolContext) -> ToolOutput:
        started = time.perf_counter()
        kind = resolve_tool_kind(call.name)
        if kind is None:
            logger.warning("tool_not_implemented", tool=call.name, tool_call_id=call.id)
            observe_tool_invocation(tool="unknown", outcome="not_implemented", latency=time.perf_counter() - started)
            return ToolOutput(tool_call_id=call.id, output=f"Tool '{call.name}' is not implemented")

        try:
            arguments = parse_arguments(call.name, call.arguments)
            output = await self._handlers[kind](arguments, context)
            outcome = "success"
        except ToolArgumentsError as exc:
            output = str(exc)
            outcome = "rejected"
            logger.info("tool_call_rejected", tool=kind.value, tool_call_id=call.id, reason=output)
        except Exception as exc:  # handler failures go back to the agent as text
            output = f"Error: {exc}"
            outcome = "error"
            logger.exception("tool_call_failed", tool=kind.value, tool_call_id=call.id)

        observe_tool_invocation(tool=kind.value, outcome=outcome, latency=time.perf_counter() - started)
        return ToolOutput(tool_call_id=call.id, output=output)

    async def dispatch_batch(self, calls: Sequence[ToolCall], context: ToolContext) -> list[ToolOutput]:
        increment_tool_round()
        if self._concurrent and len(calls) > 1:
            return list(await asyncio.gather(*(self.dispatch(call, context) for call in calls)))
        outputs: list[ToolOutput] = []
        for call in calls:
            outputs.append(await self.dispatch(call, context))
        return outputs
