import asyncio
import json
from collections import deque

import httpx
import pytest

from docassist.core.errors import AssistantAPIError, CollaboratorError
from docassist.orchestration.enums import RunStatus
from docassist.orchestration.state import ToolOutput
from docassist.services.assistant import AssistantClient, AssistantClientConfig
from docassist.services.search import SearchClient
from docassist.services.tracking import TrackingClient


@pytest.fixture
def noop_sleep(monkeypatch):
    calls = deque()

    async def _sleep(duration: float):
        calls.append(duration)

    monkeypatch.setattr(asyncio, "sleep", _sleep)
    return calls


def _make_config(**overrides):
    config = AssistantClientConfig(
        base_url="http://assistant.test/v1",
        api_key="sk-test",
        max_retries=2,
        retry_backoff_seconds=0.01,
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://assistant.test/v1")


@pytest.mark.asyncio
async def test_requests_carry_beta_and_auth_headers():
    seen = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "thread_abc"})

    async with _client(handler) as async_client:
        client = AssistantClient(_make_config(), client=async_client)
        thread_id = await client.create_thread()

    assert thread_id == "thread_abc"
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/v1/threads"
    assert seen[0].headers["OpenAI-Beta"] == "assistants=v2"
    assert seen[0].headers["Authorization"] == "Bearer sk-test"


@pytest.mark.asyncio
async def test_get_run_parses_required_tool_calls():
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/threads/thread_1/runs/run_1"
        return httpx.Response(
            200,
            json={
                "id": "run_1",
                "thread_id": "thread_1",
                "status": "requires_action",
                "required_action": {
                    "type": "submit_tool_outputs",
                    "submit_tool_outputs": {
                        "tool_calls": [
                            {
                                "id": "call_1",
                                "type": "function",
                                "function": {"name": "store_collected_data", "arguments": '{"data": {}}'},
                            }
                        ]
                    },
                },
            },
        )

    async with _client(handler) as async_client:
        run = await AssistantClient(_make_config(), client=async_client).get_run("thread_1", "run_1")

    assert run.status is RunStatus.REQUIRES_ACTION
    assert [(call.id, call.name, call.arguments) for call in run.tool_calls] == [
        ("call_1", "store_collected_data", '{"data": {}}')
    ]


@pytest.mark.asyncio
async def test_failed_run_exposes_last_error():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "run_1",
                "status": "failed",
                "last_error": {"code": "rate_limit_exceeded", "message": "Rate limit reached"},
            },
        )

    async with _client(handler) as async_client:
        run = await AssistantClient(_make_config(), client=async_client).get_run("thread_1", "run_1")

    assert run.thread_id == "thread_1"
    assert run.error_code == "rate_limit_exceeded"
    assert run.error_message == "Rate limit reached"


@pytest.mark.asyncio
async def test_submit_tool_outputs_body():
    bodies = []

    async def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "run_1", "status": "queued"})

    async with _client(handler) as async_client:
        client = AssistantClient(_make_config(), client=async_client)
        await client.submit_tool_outputs(
            "thread_1",
            "run_1",
            [ToolOutput(tool_call_id="call_1", output="ok"), ToolOutput(tool_call_id="call_2", output="done")],
        )

    assert bodies == [
        {
            "tool_outputs": [
                {"tool_call_id": "call_1", "output": "ok"},
                {"tool_call_id": "call_2", "output": "done"},
            ]
        }
    ]


@pytest.mark.asyncio
async def test_latest_message_reads_newest_text_part():
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["order"] == "desc"
        assert request.url.params["limit"] == "1"
        return httpx.Response(
            200,
            json={"data": [{"id": "msg_2", "content": [{"type": "text", "text": {"value": "¿En qué ciudad reside?"}}]}]},
        )

    async with _client(handler) as async_client:
        message = await AssistantClient(_make_config(), client=async_client).latest_message("thread_1")

    assert message == "¿En qué ciudad reside?"


@pytest.mark.asyncio
async def test_latest_message_handles_empty_thread():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": []})

    async with _client(handler) as async_client:
        assert await AssistantClient(_make_config(), client=async_client).latest_message("thread_1") is None


@pytest.mark.asyncio
async def test_rate_limit_status_raises_without_retry(noop_sleep):
    attempts = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(429, json={"error": {"message": "Rate limit reached for requests"}})

    async with _client(handler) as async_client:
        client = AssistantClient(_make_config(), client=async_client)
        with pytest.raises(AssistantAPIError) as excinfo:
            await client.create_run("thread_1", "asst_123")

    assert attempts == 1
    assert excinfo.value.is_rate_limited
    assert str(excinfo.value) == "Rate limit reached for requests"
    assert not noop_sleep


@pytest.mark.asyncio
async def test_reads_are_retried_on_server_errors(noop_sleep):
    responses = deque(
        [
            httpx.Response(503, json={"error": "unavailable"}),
            httpx.Response(200, json={"id": "run_1", "status": "completed"}),
        ]
    )

    async def handler(request: httpx.Request) -> httpx.Response:
        return responses.popleft()

    async with _client(handler) as async_client:
        run = await AssistantClient(_make_config(), client=async_client).get_run("thread_1", "run_1")

    assert run.status is RunStatus.COMPLETED
    assert list(noop_sleep) == [0.01]


@pytest.mark.asyncio
async def test_writes_are_not_retried(noop_sleep):
    attempts = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(502, text="bad gateway")

    async with _client(handler) as async_client:
        client = AssistantClient(_make_config(), client=async_client)
        with pytest.raises(AssistantAPIError) as excinfo:
            await client.add_message("thread_1", "Hola")

    assert attempts == 1
    assert excinfo.value.status_code == 502
    assert "add_message" in str(excinfo.value)


@pytest.mark.asyncio
async def test_unknown_run_status_is_an_error():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "run_1", "status": "paused"})

    async with _client(handler) as async_client:
        with pytest.raises(AssistantAPIError, match="paused"):
            await AssistantClient(_make_config(), client=async_client).get_run("thread_1", "run_1")


@pytest.mark.asyncio
async def test_search_client_sends_filters_and_parses_results():
    bodies = []

    async def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "success": True,
                "results": {
                    "knowledge_base_urls": [{"url": "https://x.gov.co", "category": "legislacion"}],
                    "web_results": [{"title": "Ley", "link": "https://y.gov.co"}],
                },
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as async_client:
        client = SearchClient("http://search.test/search", client=async_client)
        results = await client.search("tutela", domain_filter="civil")

    assert bodies == [{"query": "tutela", "include_kb_urls": True, "legal_area": "civil"}]
    assert results is not None
    assert results.knowledge_base_urls[0].category == "legislacion"
    assert results.web_results[0].link == "https://y.gov.co"


@pytest.mark.asyncio
async def test_search_client_unsuccessful_and_error_responses():
    responses = deque([httpx.Response(200, json={"success": False}), httpx.Response(500)])

    async def handler(request: httpx.Request) -> httpx.Response:
        return responses.popleft()

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as async_client:
        client = SearchClient("http://search.test/search", client=async_client)
        assert await client.search("tutela") is None
        with pytest.raises(CollaboratorError):
            await client.search("tutela")


@pytest.mark.asyncio
async def test_tracking_client_parses_receipt():
    async def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        assert payload["sla_hours"] == 4
        assert payload["user_email"] == "ana@example.com"
        return httpx.Response(
            200,
            json={"token": "ABC123DEF456", "price": 50000, "sla_deadline": "2026-01-01T04:00:00+00:00"},
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as async_client:
        client = TrackingClient("http://tracking.test/create", client=async_client)
        receipt = await client.register(
            document_content="Yo, ANA",
            document_type="declaracion",
            user_name="Ana",
            user_email="ana@example.com",
            sla_hours=4,
        )

    assert receipt.tracking_id == "ABC123DEF456"
    assert receipt.price == 50000
    assert receipt.sla_deadline.hour == 4


@pytest.mark.asyncio
async def test_tracking_client_rejects_invalid_receipt():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as async_client:
        client = TrackingClient("http://tracking.test/create", client=async_client)
        with pytest.raises(CollaboratorError, match="invalid receipt"):
            await client.register(
                document_content="x",
                document_type="declaracion",
                user_name="Ana",
                user_email="ana@example.com",
                sla_hours=4,
            )
