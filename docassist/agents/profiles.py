from __future__ import annotations

from typing import Any, Iterable

import asyncpg
from pydantic import BaseModel, Field

from ..core.config import Settings
from ..core.errors import AgentNotFoundError, StateStoreError
from ..core.logging import get_logger
from ..orchestration.synthesis import DocumentTemplate, FieldDescriptor
from ..utils.asyncpg_helpers import PoolHolder, create_pool
from ..utils.json_encoding import decode_jsonb

logger = get_logger(name=__name__)


class AgentProfile(BaseModel):
    """Internal agent record bound to one external assistant and one document template."""

    agent_id: str
    assistant_id: str
    name: str = ""
    document_type: str = "document"
    template: DocumentTemplate
    sla_hours: int = Field(default=4, ge=1)
    active: bool = True

    @property
    def fields(self) -> list[FieldDescriptor]:
        return self.template.fields


class AgentProfileStore:
    async def get(self, agent_id: str) -> AgentProfile | None:
        profile = await self._fetch(agent_id)
        if profile is None or not profile.active:
            return None
        return profile

    async def require(self, agent_id: str) -> AgentProfile:
        profile = await self.get(agent_id)
        if profile is None:
            logger.warning("agent_profile_missing", agent_id=agent_id)
            raise AgentNotFoundError(f"Agent '{agent_id}' was not found or is inactive")
        return profile

    async def close(self) -> None:
        return

    async def _fetch(self, agent_id: str) -> AgentProfile | None:
        raise NotImplementedError


class InMemoryAgentProfileStore(AgentProfileStore):
    def __init__(self, profiles: Iterable[AgentProfile] | None = None) -> None:
        self._profiles: dict[str, AgentProfile] = {}
        for profile in profiles or ():
            self.add(profile)

    def add(self, profile: AgentProfile) -> None:
        self._profiles[profile.agent_id] = profile

    async def _fetch(self, agent_id: str) -> AgentProfile | None:
        profile = self._profiles.get(agent_id)
        return profile.model_copy(deep=True) if profile is not None else None


class PostgresAgentProfileStore(AgentProfileStore):
    _FETCH = """
        SELECT
            agent_id,
            assistant_id,
            name,
            document_type,
            template_content,
            placeholder_fields,
            sla_hours,
            active
        FROM agent_profiles
        WHERE agent_id = $1
    """

    def __init__(self, pool: Any) -> None:
        self._pool = PoolHolder(pool, owner=type(self).__name__)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PostgresAgentProfileStore":
        return cls(create_pool(settings))

    async def close(self) -> None:
        await self._pool.close()

    async def _fetch(self, agent_id: str) -> AgentProfile | None:
        try:
            pool = await self._pool.get()
            async with pool.acquire() as connection:
                row = await connection.fetchrow(self._FETCH, agent_id)
        except (asyncpg.PostgresError, OSError) as exc:
            raise StateStoreError(f"Failed to load agent profile: {exc}") from exc
        if row is None:
            return None
        fields = decode_jsonb(row["placeholder_fields"]) or []
        return AgentProfile(
            agent_id=row["agent_id"],
            assistant_id=row["assistant_id"],
            name=row["name"] or "",
            document_type=row["document_type"],
            template=DocumentTemplate(
                content=row["template_content"],
                fields=[FieldDescriptor.model_validate(item) for item in fields],
            ),
            sla_hours=row["sla_hours"],
            active=row["active"],
        )


def build_profile_store(settings: Settings) -> AgentProfileStore:
    if settings.storage.backend == "memory" or settings.environment == "test":
        logger.info("agent_profile_store_in_memory", environment=settings.environment)
        return InMemoryAgentProfileStore()
    return PostgresAgentProfileStore.from_settings(settings)


__all__ = [
    "AgentProfile",
    "AgentProfileStore",
    "InMemoryAgentProfileStore",
    "PostgresAgentProfileStore",
    "build_profile_store",
]
