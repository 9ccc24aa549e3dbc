from __future__ import annotations

import time
from typing import Any

import httpx
from pydantic import BaseModel, Field

from ..core.config import Settings
from ..core.errors import CollaboratorError
from ..core.logging import get_logger
from ..core.metrics import observe_upstream_request

logger = get_logger(name=__name__)


class KnowledgeBaseLink(BaseModel):
    url: str
    category: str = "general"
    description: str | None = None


class WebResult(BaseModel):
    title: str = ""
    link: str
    snippet: str = ""


class AnswerBox(BaseModel):
    answer: str = ""
    source: str | None = None


class KnowledgeGraph(BaseModel):
    title: str = ""
    description: str = ""


class SearchResults(BaseModel):
    knowledge_base_urls: list[KnowledgeBaseLink] = Field(default_factory=list)
    web_results: list[WebResult] = Field(default_factory=list)
    answer_box: AnswerBox | None = None
    knowledge_graph: KnowledgeGraph | None = None


class SearchClient:
    """Client for the external source-search collaborator."""

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    @classmethod
    def from_settings(cls, settings: Settings) -> "SearchClient":
        return cls(
            settings.search.endpoint,
            api_key=settings.search.api_key,
            timeout_seconds=settings.search.timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def search(
        self,
        query: str,
        *,
        domain_filter: str | None = None,
        source_type: str | None = None,
    ) -> SearchResults | None:
        """Return results, or ``None`` when the collaborator reports no success."""
        body: dict[str, Any] = {"query": query, "include_kb_urls": True}
        if domain_filter:
            body["legal_area"] = domain_filter
        if source_type:
            body["source_type"] = source_type

        start = time.perf_counter()
        try:
            response = await self._client.post(self._endpoint, json=body, headers=self._headers)
        except httpx.RequestError as exc:
            observe_upstream_request(service="search", operation="search", status=None, latency=time.perf_counter() - start)
            raise CollaboratorError(f"Search request failed: {exc}") from exc
        observe_upstream_request(
            service="search",
            operation="search",
            status=response.status_code,
            latency=time.perf_counter() - start,
        )
        if response.is_error:
            raise CollaboratorError(f"Search collaborator answered with status {response.status_code}")

        payload = response.json()
        if not isinstance(payload, dict) or not payload.get("success"):
            logger.info("search_unsuccessful", query=query)
            return None
        return SearchResults.model_validate(payload.get("results") or {})


__all__ = [
    "AnswerBox",
    "KnowledgeBaseLink",
    "KnowledgeGraph",
    "SearchClient",
    "SearchResults",
    "WebResult",
]
