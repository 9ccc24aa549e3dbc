from __future__ import annotations

import time
from datetime import datetime
from decimal import Decimal

import httpx
from pydantic import BaseModel, Field, ValidationError

from ..core.config import Settings
from ..core.errors import CollaboratorError
from ..core.logging import get_logger
from ..core.metrics import observe_upstream_request

logger = get_logger(name=__name__)


class TrackingReceipt(BaseModel):
    tracking_id: str = Field(alias="token")
    price: Decimal
    sla_deadline: datetime

    model_config = {"populate_by_name": True}


class TrackingClient:
    """Registers a generated document with the document-tracking collaborator."""

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    @classmethod
    def from_settings(cls, settings: Settings) -> "TrackingClient":
        return cls(
            settings.tracking.endpoint,
            api_key=settings.tracking.api_key,
            timeout_seconds=settings.tracking.timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def register(
        self,
        *,
        document_content: str,
        document_type: str,
        user_name: str,
        user_email: str,
        sla_hours: int,
    ) -> TrackingReceipt:
        body = {
            "document_content": document_content,
            "document_type": document_type,
            "user_name": user_name,
            "user_email": user_email,
            "sla_hours": sla_hours,
        }
        start = time.perf_counter()
        try:
            response = await self._client.post(self._endpoint, json=body, headers=self._headers)
        except httpx.RequestError as exc:
            observe_upstream_request(
                service="tracking", operation="register", status=None, latency=time.perf_counter() - start
            )
            raise CollaboratorError(f"Document tracking request failed: {exc}") from exc
        observe_upstream_request(
            service="tracking",
            operation="register",
            status=response.status_code,
            latency=time.perf_counter() - start,
        )
        if response.is_error:
            raise CollaboratorError(f"Document tracking answered with status {response.status_code}")
        try:
            receipt = TrackingReceipt.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise CollaboratorError(f"Document tracking returned an invalid receipt: {exc}") from exc
        logger.info("document_tracking_registered", tracking_id=receipt.tracking_id, document_type=document_type)
        return receipt


__all__ = ["TrackingClient", "TrackingReceipt"]
