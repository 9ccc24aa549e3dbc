"""Per-agent usage counters updated after every turn.

The success rate is a running weighted average expressed in percent: a
successful turn contributes 100 and any other outcome contributes 0.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import asyncpg
from pydantic import BaseModel

from ..core.config import Settings
from ..core.errors import StateStoreError
from ..core.logging import get_logger
from ..utils.asyncpg_helpers import PoolHolder, create_pool

logger = get_logger(name=__name__)

_CENT = Decimal("0.01")


class AgentUsageStats(BaseModel):
    conversations_count: int = 0
    success_rate: Decimal = Decimal("0")
    last_activity_at: datetime | None = None


def apply_usage(stats: AgentUsageStats, *, succeeded: bool, now: datetime | None = None) -> AgentUsageStats:
    count = stats.conversations_count
    score = Decimal(100) if succeeded else Decimal(0)
    rate = (stats.success_rate * count + score) / (count + 1)
    return AgentUsageStats(
        conversations_count=count + 1,
        success_rate=rate.quantize(_CENT, rounding=ROUND_HALF_UP),
        last_activity_at=now or datetime.now(timezone.utc),
    )


class AgentUsageSink:
    async def record(self, agent_id: str, *, succeeded: bool) -> AgentUsageStats:
        stats = await self._record(agent_id, succeeded=succeeded)
        logger.debug(
            "agent_usage_recorded",
            agent_id=agent_id,
            succeeded=succeeded,
            conversations_count=stats.conversations_count,
            success_rate=str(stats.success_rate),
        )
        return stats

    async def close(self) -> None:
        return

    async def _record(self, agent_id: str, *, succeeded: bool) -> AgentUsageStats:
        raise NotImplementedError


class InMemoryAgentUsageSink(AgentUsageSink):
    def __init__(self) -> None:
        self._stats: dict[str, AgentUsageStats] = {}
        self._lock = asyncio.Lock()

    def stats(self, agent_id: str) -> AgentUsageStats:
        return self._stats.get(agent_id, AgentUsageStats()).model_copy()

    async def _record(self, agent_id: str, *, succeeded: bool) -> AgentUsageStats:
        async with self._lock:
            updated = apply_usage(self._stats.get(agent_id, AgentUsageStats()), succeeded=succeeded)
            self._stats[agent_id] = updated
            return updated.model_copy()


class PostgresAgentUsageSink(AgentUsageSink):
    _LOCK_ROW = """
        SELECT conversations_count, success_rate, last_activity_at
        FROM agent_profiles
        WHERE agent_id = $1
        FOR UPDATE
    """

    _UPDATE = """
        UPDATE agent_profiles
        SET conversations_count = $2,
            success_rate = $3,
            last_activity_at = $4
        WHERE agent_id = $1
    """

    def __init__(self, pool: Any) -> None:
        self._pool = PoolHolder(pool, owner=type(self).__name__)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PostgresAgentUsageSink":
        return cls(create_pool(settings))

    async def close(self) -> None:
        await self._pool.close()

    async def _record(self, agent_id: str, *, succeeded: bool) -> AgentUsageStats:
        try:
            pool = await self._pool.get()
            async with pool.acquire() as connection:
                async with connection.transaction():
                    row = await connection.fetchrow(self._LOCK_ROW, agent_id)
                    if row is None:
                        raise StateStoreError(f"Agent '{agent_id}' has no profile row to update")
                    current = AgentUsageStats(
                        conversations_count=row["conversations_count"] or 0,
                        success_rate=row["success_rate"] or Decimal("0"),
                        last_activity_at=row["last_activity_at"],
                    )
                    updated = apply_usage(current, succeeded=succeeded)
                    await connection.execute(
                        self._UPDATE,
                        agent_id,
                        updated.conversations_count,
                        updated.success_rate,
                        updated.last_activity_at,
                    )
        except (asyncpg.PostgresError, OSError) as exc:
            raise StateStoreError(f"Failed to update agent usage: {exc}") from exc
        return updated


def build_usage_sink(settings: Settings) -> AgentUsageSink:
    if settings.storage.backend == "memory" or settings.environment == "test":
        return InMemoryAgentUsageSink()
    return PostgresAgentUsageSink.from_settings(settings)


__all__ = [
    "AgentUsageSink",
    "AgentUsageStats",
    "InMemoryAgentUsageSink",
    "PostgresAgentUsageSink",
    "apply_usage",
    "build_usage_sink",
]
