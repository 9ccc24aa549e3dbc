from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from ..core.config import Settings
from ..core.errors import AssistantAPIError
from ..core.logging import get_logger
from ..core.metrics import observe_upstream_request
from ..orchestration.enums import RunStatus
from ..orchestration.state import RunSnapshot, ToolCall, ToolOutput

logger = get_logger(name=__name__)


@dataclass(slots=True)
class AssistantClientConfig:
    base_url: str
    api_key: str | None
    beta_header: str = "assistants=v2"
    timeout_seconds: float = 30.0
    max_retries: int = 2
    retry_backoff_seconds: float = 0.5
    default_headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AssistantClientConfig":
        section = settings.assistant
        return cls(
            base_url=section.base_url,
            api_key=section.api_key,
            beta_header=section.beta_header,
            timeout_seconds=section.timeout_seconds,
            max_retries=section.max_retries,
            retry_backoff_seconds=section.retry_backoff_seconds,
        )


class AssistantClient:
    """Thin async client for the threads/runs/messages endpoints of an assistants API."""

    RETRY_STATUS_CODES = {500, 502, 503, 504}

    def __init__(self, config: AssistantClientConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_client = client is None
        headers = {"OpenAI-Beta": config.beta_header, **config.default_headers}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            timeout=httpx.Timeout(config.timeout_seconds),
        )
        self._headers = headers

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def create_thread(self) -> str:
        payload = await self._request("POST", "/threads", operation="create_thread", json={})
        return str(payload["id"])

    async def add_message(self, thread_id: str, content: str, *, role: str = "user") -> str:
        payload = await self._request(
            "POST",
            f"/threads/{thread_id}/messages",
            operation="add_message",
            json={"role": role, "content": content},
        )
        return str(payload.get("id", ""))

    async def create_run(self, thread_id: str, assistant_id: str) -> RunSnapshot:
        payload = await self._request(
            "POST",
            f"/threads/{thread_id}/runs",
            operation="create_run",
            json={"assistant_id": assistant_id},
        )
        return parse_run(payload, thread_id=thread_id)

    async def get_run(self, thread_id: str, run_id: str) -> RunSnapshot:
        payload = await self._request("GET", f"/threads/{thread_id}/runs/{run_id}", operation="get_run")
        return parse_run(payload, thread_id=thread_id)

    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: Sequence[ToolOutput]) -> RunSnapshot:
        payload = await self._request(
            "POST",
            f"/threads/{thread_id}/runs/{run_id}/submit_tool_outputs",
            operation="submit_tool_outputs",
            json={"tool_outputs": [output.model_dump() for output in outputs]},
        )
        return parse_run(payload, thread_id=thread_id)

    async def latest_message(self, thread_id: str) -> str | None:
        payload = await self._request(
            "GET",
            f"/threads/{thread_id}/messages",
            operation="list_messages",
            params={"order": "desc", "limit": 1},
        )
        messages = payload.get("data") or []
        if not messages:
            return None
        for part in messages[0].get("content") or []:
            text = (part.get("text") or {}).get("value") if isinstance(part, dict) else None
            if text:
                return str(text)
        return None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        # only reads are retried; a repeated POST could start a second run
        retries = self._config.max_retries if method.upper() == "GET" else 0
        backoff = self._config.retry_backoff_seconds
        attempt = 0
        while True:
            attempt += 1
            start = time.perf_counter()
            try:
                response = await self._client.request(method, path, json=json, params=params, headers=self._headers)
            except httpx.RequestError as exc:
                observe_upstream_request(
                    service="assistant", operation=operation, status=None, latency=time.perf_counter() - start
                )
                if attempt <= retries:
                    logger.warning("assistant_request_retry", operation=operation, attempt=attempt, error=str(exc))
                    await asyncio.sleep(backoff)
                    backoff *= 2
                    continue
                raise AssistantAPIError(f"Assistants API request failed: {exc}") from exc

            observe_upstream_request(
                service="assistant",
                operation=operation,
                status=response.status_code,
                latency=time.perf_counter() - start,
            )
            if response.status_code in self.RETRY_STATUS_CODES and attempt <= retries:
                logger.warning(
                    "assistant_request_retry",
                    operation=operation,
                    attempt=attempt,
                    status=response.status_code,
                )
                await asyncio.sleep(backoff)
                backoff *= 2
                continue
            if response.is_error:
                raise AssistantAPIError(
                    _error_message(response, operation),
                    status_code=response.status_code,
                    body=response.text,
                )
            return response.json()


def _error_message(response: httpx.Response, operation: str) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return f"Assistants API {operation} failed with status {response.status_code}"


def parse_run(payload: dict[str, Any], *, thread_id: str) -> RunSnapshot:
    raw_status = payload.get("status")
    try:
        status = RunStatus(raw_status)
    except ValueError as exc:
        raise AssistantAPIError(f"Unexpected run status: {raw_status!r}") from exc

    tool_calls: list[ToolCall] = []
    required = payload.get("required_action") or {}
    for item in (required.get("submit_tool_outputs") or {}).get("tool_calls") or []:
        function = item.get("function") or {}
        tool_calls.append(
            ToolCall(
                id=str(item["id"]),
                name=str(function.get("name", "")),
                arguments=function.get("arguments") or "{}",
            )
        )

    last_error = payload.get("last_error") or {}
    return RunSnapshot(
        run_id=str(payload["id"]),
        thread_id=str(payload.get("thread_id") or thread_id),
        status=status,
        tool_calls=tool_calls,
        error_message=last_error.get("message"),
        error_code=last_error.get("code"),
    )


__all__ = ["AssistantClient", "AssistantClientConfig", "parse_run"]
