from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Iterable

import asyncpg

from ..core.config import Settings
from ..core.errors import StateStoreError
from ..core.logging import get_logger
from ..core.metrics import increment_reconciled_rows, increment_state_write
from ..utils.asyncpg_helpers import PoolHolder, create_pool
from ..utils.json_encoding import decode_jsonb, decode_string_map, encode_jsonb
from .enums import RunStatus, SessionStatus
from .state import ConversationDelta, ConversationRecord, SessionKey, UserContact, apply_delta

logger = get_logger(name=__name__)

TimestampFactory = Callable[[], datetime]


class ConversationStateStore:
    """Per-session state rows keyed by ``(thread_id, agent_id)``.

    Writes are upserts on the composite key. Duplicate rows can still appear when
    the key was ambiguous at write time (a thread created concurrently by two
    turns), so callers run :meth:`reconcile` before reading and before persisting.
    """

    async def get(self, key: SessionKey) -> ConversationRecord | None:
        return await self._fetch_latest(key)

    async def merge_write(
        self,
        key: SessionKey,
        delta: ConversationDelta,
        *,
        merge: bool = True,
    ) -> ConversationRecord:
        record = await self._upsert(key, delta, merge=merge)
        increment_state_write(merge=merge)
        logger.debug(
            "conversation_state_written",
            thread_id=key.thread_id,
            agent_id=key.agent_id,
            merge=merge,
            collected_fields=len(record.collected_data),
        )
        return record

    async def reconcile(self, key: SessionKey) -> int:
        removed = await self._delete_duplicates(key)
        if removed:
            increment_reconciled_rows(removed)
            logger.warning(
                "conversation_duplicates_removed",
                thread_id=key.thread_id,
                agent_id=key.agent_id,
                removed=removed,
            )
        return removed

    async def close(self) -> None:
        return

    @asynccontextmanager
    async def lifecycle(self) -> AsyncIterator["ConversationStateStore"]:
        try:
            yield self
        finally:
            await self.close()

    # Abstract hooks -----------------------------------------------------------------

    async def _fetch_latest(self, key: SessionKey) -> ConversationRecord | None:
        raise NotImplementedError

    async def _upsert(self, key: SessionKey, delta: ConversationDelta, *, merge: bool) -> ConversationRecord:
        raise NotImplementedError

    async def _delete_duplicates(self, key: SessionKey) -> int:
        raise NotImplementedError


class InMemoryConversationStateStore(ConversationStateStore):
    def __init__(self, records: Iterable[ConversationRecord] | None = None) -> None:
        self._rows: list[ConversationRecord] = []
        self._next_id = 1
        self._lock = asyncio.Lock()
        if records:
            self.load(records)

    def load(self, records: Iterable[ConversationRecord]) -> None:
        """Load rows verbatim, without the uniqueness check (fixtures, restored snapshots)."""
        for record in records:
            row_id = record.id or self._next_id
            self._rows.append(record.model_copy(update={"id": row_id}))
            self._next_id = max(self._next_id, row_id) + 1

    def rows(self, key: SessionKey | None = None) -> list[ConversationRecord]:
        if key is None:
            return [row.model_copy(deep=True) for row in self._rows]
        return [row.model_copy(deep=True) for row in self._rows if row.key == key]

    async def _fetch_latest(self, key: SessionKey) -> ConversationRecord | None:
        async with self._lock:
            latest = self._latest_index(key)
            if latest is None:
                return None
            return self._rows[latest].model_copy(deep=True)

    async def _upsert(self, key: SessionKey, delta: ConversationDelta, *, merge: bool) -> ConversationRecord:
        async with self._lock:
            index = self._latest_index(key)
            if index is None:
                base = ConversationRecord(id=self._next_id, thread_id=key.thread_id, agent_id=key.agent_id)
                self._next_id += 1
                updated = apply_delta(base, delta, merge=merge)
                self._rows.append(updated)
            else:
                updated = apply_delta(self._rows[index], delta, merge=merge)
                self._rows[index] = updated
            return updated.model_copy(deep=True)

    async def _delete_duplicates(self, key: SessionKey) -> int:
        async with self._lock:
            keep = self._latest_index(key)
            if keep is None:
                return 0
            survivor = self._rows[keep]
            before = len(self._rows)
            self._rows = [row for row in self._rows if row.key != key or row is survivor]
            return before - len(self._rows)

    def _latest_index(self, key: SessionKey) -> int | None:
        latest: int | None = None
        for index, row in enumerate(self._rows):
            if row.key != key:
                continue
            if latest is None or (row.updated_at, row.id) > (self._rows[latest].updated_at, self._rows[latest].id):
                latest = index
        return latest


class PostgresConversationStateStore(ConversationStateStore):
    _COLUMNS = """
        id,
        thread_id,
        agent_id,
        status,
        last_message,
        run_status,
        run_id,
        collected_data,
        placeholder_mapping,
        user_contact,
        updated_at
    """

    _FETCH_LATEST = f"""
        SELECT {_COLUMNS}
        FROM agent_conversations
        WHERE thread_id = $1 AND agent_id = $2
        ORDER BY updated_at DESC, id DESC
        LIMIT 1
    """

    _UPSERT = f"""
        INSERT INTO agent_conversations AS conv (
            thread_id,
            agent_id,
            status,
            last_message,
            run_status,
            run_id,
            collected_data,
            placeholder_mapping,
            user_contact,
            updated_at
        )
        VALUES (
            $1,
            $2,
            COALESCE($3::text, 'active'),
            $4::text,
            $5::text,
            $6::text,
            COALESCE($7::jsonb, '{{}}'::jsonb),
            COALESCE($8::jsonb, '{{}}'::jsonb),
            $9::jsonb,
            $10
        )
        ON CONFLICT (thread_id, agent_id) DO UPDATE SET
            status = COALESCE($3::text, conv.status),
            last_message = COALESCE($4::text, conv.last_message),
            run_status = COALESCE($5::text, conv.run_status),
            run_id = COALESCE($6::text, conv.run_id),
            collected_data = CASE
                WHEN $7::jsonb IS NULL THEN conv.collected_data
                WHEN $11::boolean THEN conv.collected_data || $7::jsonb
                ELSE $7::jsonb
            END,
            placeholder_mapping = CASE
                WHEN $8::jsonb IS NULL THEN conv.placeholder_mapping
                WHEN $11::boolean THEN conv.placeholder_mapping || $8::jsonb
                ELSE $8::jsonb
            END,
            user_contact = COALESCE($9::jsonb, conv.user_contact),
            updated_at = $10
        RETURNING {_COLUMNS}
    """

    _DELETE_DUPLICATES = """
        DELETE FROM agent_conversations
        WHERE thread_id = $1
          AND agent_id = $2
          AND id <> (
              SELECT id
              FROM agent_conversations
              WHERE thread_id = $1 AND agent_id = $2
              ORDER BY updated_at DESC, id DESC
              LIMIT 1
          )
    """

    def __init__(self, pool: Any, *, now: TimestampFactory | None = None) -> None:
        self._pool = PoolHolder(pool, owner=type(self).__name__)
        self._now: TimestampFactory = now or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings: Settings) -> "PostgresConversationStateStore":
        return cls(create_pool(settings))

    async def close(self) -> None:
        await self._pool.close()

    async def _fetch_latest(self, key: SessionKey) -> ConversationRecord | None:
        try:
            pool = await self._pool.get()
            async with pool.acquire() as connection:
                row = await connection.fetchrow(self._FETCH_LATEST, key.thread_id, key.agent_id)
        except (asyncpg.PostgresError, OSError) as exc:
            raise StateStoreError(f"Failed to load conversation state: {exc}") from exc
        return None if row is None else self._row_to_record(row)

    async def _upsert(self, key: SessionKey, delta: ConversationDelta, *, merge: bool) -> ConversationRecord:
        user_contact = delta.user_contact.model_dump() if delta.user_contact is not None else None
        try:
            pool = await self._pool.get()
            async with pool.acquire() as connection:
                row = await connection.fetchrow(
                    self._UPSERT,
                    key.thread_id,
                    key.agent_id,
                    delta.status.value if delta.status is not None else None,
                    delta.last_message,
                    delta.run_status.value if delta.run_status is not None else None,
                    delta.run_id,
                    encode_jsonb(delta.collected_data),
                    encode_jsonb(delta.placeholder_mapping),
                    encode_jsonb(user_contact),
                    self._now(),
                    merge,
                )
        except (asyncpg.PostgresError, OSError) as exc:
            raise StateStoreError(f"Failed to write conversation state: {exc}") from exc
        return self._row_to_record(row)

    async def _delete_duplicates(self, key: SessionKey) -> int:
        try:
            pool = await self._pool.get()
            async with pool.acquire() as connection:
                status = await connection.execute(self._DELETE_DUPLICATES, key.thread_id, key.agent_id)
        except (asyncpg.PostgresError, OSError) as exc:
            raise StateStoreError(f"Failed to reconcile conversation state: {exc}") from exc
        return _affected_rows(status)

    @staticmethod
    def _row_to_record(row: Any) -> ConversationRecord:
        contact = decode_jsonb(row["user_contact"])
        return ConversationRecord(
            id=row["id"],
            thread_id=row["thread_id"],
            agent_id=row["agent_id"],
            status=SessionStatus(row["status"]),
            last_message=row["last_message"],
            run_status=RunStatus(row["run_status"]) if row["run_status"] else None,
            run_id=row["run_id"],
            collected_data=decode_string_map(row["collected_data"]),
            placeholder_mapping=decode_string_map(row["placeholder_mapping"]),
            user_contact=UserContact(**contact) if isinstance(contact, dict) else None,
            updated_at=row["updated_at"],
        )


def _affected_rows(status: str) -> int:
    # asyncpg returns the command tag, e.g. "DELETE 3"
    try:
        return int(status.rsplit(" ", maxsplit=1)[-1])
    except (ValueError, AttributeError):
        return 0


def build_state_store(settings: Settings) -> ConversationStateStore:
    if settings.storage.backend == "memory" or settings.environment == "test":
        logger.info("conversation_store_in_memory", environment=settings.environment)
        return InMemoryConversationStateStore()
    logger.info("conversation_store_postgres_enabled", environment=settings.environment)
    return PostgresConversationStateStore.from_settings(settings)


__all__ = [
    "ConversationStateStore",
    "InMemoryConversationStateStore",
    "PostgresConversationStateStore",
    "build_state_store",
]
