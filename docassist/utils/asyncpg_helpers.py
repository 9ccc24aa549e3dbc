from __future__ import annotations

from typing import Any

import asyncpg

from ..core.config import Settings


def create_pool(settings: Settings) -> Any:
    """Return an un-awaited asyncpg pool; it initializes on first use."""
    return asyncpg.create_pool(
        dsn=str(settings.postgres.dsn),
        min_size=settings.postgres.pool_min_size,
        max_size=settings.postgres.pool_max_size,
    )


async def ensure_pool_ready(pool: Any) -> Any:
    """Ensure an asyncpg pool is fully initialized before use."""
    if hasattr(pool, "__await__") and not isinstance(pool, asyncpg.Pool):
        pool = await pool
    initializer = getattr(pool, "_async__init__", None)
    initialized = getattr(pool, "_initialized", True)
    if callable(initializer) and not initialized:
        await initializer()
    return pool


class PoolHolder:
    """Lazily resolves a pool, or an awaitable producing one, shared by a Postgres-backed store."""

    def __init__(self, pool_or_factory: Any, *, owner: str) -> None:
        self._pool_or_factory = pool_or_factory
        self._pool: asyncpg.Pool | None = None
        self._owner = owner

    async def get(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool
        candidate = await ensure_pool_ready(self._pool_or_factory)
        if not isinstance(candidate, asyncpg.Pool):
            raise RuntimeError(f"Invalid asyncpg pool for {self._owner}")
        self._pool = candidate
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None


__all__ = ["PoolHolder", "create_pool", "ensure_pool_ready"]
