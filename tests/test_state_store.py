from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from docassist.core.config import Settings
from docassist.orchestration.enums import RunStatus, SessionStatus
from docassist.orchestration.state import ConversationDelta, ConversationRecord, SessionKey, UserContact
from docassist.orchestration.store import (
    InMemoryConversationStateStore,
    PostgresConversationStateStore,
    _affected_rows,
    build_state_store,
)

KEY = SessionKey(thread_id="thread_1", agent_id="agent-1")
OTHER = SessionKey(thread_id="thread_2", agent_id="agent-1")
BASE_TIME = datetime(2020, 1, 1, tzinfo=timezone.utc)


def _row(row_id: int, *, minutes: int, key: SessionKey = KEY, **fields) -> ConversationRecord:
    return ConversationRecord(
        id=row_id,
        thread_id=key.thread_id,
        agent_id=key.agent_id,
        updated_at=BASE_TIME + timedelta(minutes=minutes),
        **fields,
    )


@pytest.mark.asyncio
async def test_reconcile_keeps_most_recent_row() -> None:
    store = InMemoryConversationStateStore(
        [
            _row(1, minutes=0, collected_data={"name": "old"}),
            _row(2, minutes=5, collected_data={"name": "newest"}),
            _row(3, minutes=2, collected_data={"name": "middle"}),
            _row(4, minutes=1, key=OTHER),
        ]
    )

    removed = await store.reconcile(KEY)

    assert removed == 2
    rows = store.rows(KEY)
    assert len(rows) == 1
    assert rows[0].id == 2
    assert rows[0].collected_data == {"name": "newest"}
    assert len(store.rows(OTHER)) == 1


@pytest.mark.asyncio
async def test_reconcile_breaks_timestamp_ties_by_highest_id() -> None:
    store = InMemoryConversationStateStore([_row(7, minutes=3), _row(9, minutes=3), _row(8, minutes=3)])

    assert await store.reconcile(KEY) == 2
    assert [row.id for row in store.rows(KEY)] == [9]


@pytest.mark.asyncio
async def test_reconcile_is_idempotent_and_noop_for_unknown_key() -> None:
    store = InMemoryConversationStateStore([_row(1, minutes=0), _row(2, minutes=1)])

    assert await store.reconcile(KEY) == 1
    assert await store.reconcile(KEY) == 0
    assert await store.reconcile(OTHER) == 0


@pytest.mark.asyncio
async def test_get_returns_latest_row_even_with_duplicates() -> None:
    store = InMemoryConversationStateStore([_row(1, minutes=9, last_message="latest"), _row(2, minutes=1)])

    record = await store.get(KEY)

    assert record is not None
    assert record.last_message == "latest"
    assert await store.get(OTHER) is None


@pytest.mark.asyncio
async def test_merge_write_creates_then_merges_collected_data() -> None:
    store = InMemoryConversationStateStore()

    await store.merge_write(KEY, ConversationDelta(collected_data={"name": "Ana", "city": "Cali"}))
    record = await store.merge_write(KEY, ConversationDelta(collected_data={"city": "Medellín", "id": "123"}))

    assert record.collected_data == {"name": "Ana", "city": "Medellín", "id": "123"}
    assert len(store.rows(KEY)) == 1


@pytest.mark.asyncio
async def test_merge_write_replace_discards_previous_keys() -> None:
    store = InMemoryConversationStateStore()
    await store.merge_write(KEY, ConversationDelta(collected_data={"name": "Ana", "city": "Cali"}))

    record = await store.merge_write(KEY, ConversationDelta(collected_data={"email": "ana@example.com"}), merge=False)

    assert record.collected_data == {"email": "ana@example.com"}


@pytest.mark.asyncio
async def test_merge_writes_accumulate_and_later_values_win() -> None:
    store = InMemoryConversationStateStore()

    await store.merge_write(KEY, ConversationDelta(collected_data={"a": "1"}))
    await store.merge_write(KEY, ConversationDelta(collected_data={"b": "2"}))
    record = await store.merge_write(KEY, ConversationDelta(collected_data={"a": "3"}))

    assert record.collected_data == {"a": "3", "b": "2"}


@pytest.mark.asyncio
async def test_replace_write_after_merge_keeps_only_new_keys() -> None:
    store = InMemoryConversationStateStore()
    await store.merge_write(KEY, ConversationDelta(collected_data={"a": "1", "b": "2"}), merge=True)

    record = await store.merge_write(KEY, ConversationDelta(collected_data={"c": "3"}), merge=False)

    assert record.collected_data == {"c": "3"}
    assert (await store.get(KEY)).collected_data == {"c": "3"}


@pytest.mark.asyncio
async def test_placeholder_mapping_write_leaves_collected_data_untouched() -> None:
    store = InMemoryConversationStateStore()
    await store.merge_write(KEY, ConversationDelta(collected_data={"name": "Ana", "city": "Cali"}))

    record = await store.merge_write(KEY, ConversationDelta(placeholder_mapping={"NAME": "Ana"}))

    assert record.collected_data == {"name": "Ana", "city": "Cali"}
    assert record.placeholder_mapping == {"NAME": "Ana"}


@pytest.mark.asyncio
async def test_merge_write_keeps_unsupplied_fields_and_refreshes_timestamp() -> None:
    store = InMemoryConversationStateStore([_row(1, minutes=0, collected_data={"name": "Ana"})])
    contact = UserContact(name="Ana", email="ana@example.com", authenticated=True)

    record = await store.merge_write(
        KEY,
        ConversationDelta(
            run_status=RunStatus.COMPLETED,
            run_id="run_1",
            status=SessionStatus.COMPLETED,
            user_contact=contact,
        ),
    )

    assert record.collected_data == {"name": "Ana"}
    assert record.run_status is RunStatus.COMPLETED
    assert record.status is SessionStatus.COMPLETED
    assert record.is_authenticated
    assert record.updated_at > BASE_TIME


def test_affected_rows_parses_command_tag() -> None:
    assert _affected_rows("DELETE 3") == 3
    assert _affected_rows("DELETE 0") == 0
    assert _affected_rows("") == 0


def test_build_state_store_uses_memory_backend_for_tests() -> None:
    assert isinstance(build_state_store(Settings(environment="test")), InMemoryConversationStateStore)
    assert isinstance(
        build_state_store(Settings(storage={"backend": "memory"})),
        InMemoryConversationStateStore,
    )


class _FakeConnection:
    def __init__(self, status: str) -> None:
        self.status = status
        self.executed: list[tuple[str, tuple]] = []

    async def execute(self, query: str, *args) -> str:
        self.executed.append((query, args))
        return self.status


class _FakeAcquire:
    def __init__(self, connection: _FakeConnection) -> None:
        self._connection = connection

    async def __aenter__(self) -> _FakeConnection:
        return self._connection

    async def __aexit__(self, *exc_info) -> None:
        return None


class _FakePool:
    def __init__(self, connection: _FakeConnection) -> None:
        self._connection = connection

    def acquire(self) -> _FakeAcquire:
        return _FakeAcquire(self._connection)


@pytest.mark.asyncio
async def test_postgres_reconcile_reports_deleted_rows(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = _FakeConnection("DELETE 2")
    store = PostgresConversationStateStore(None)

    async def _get_pool():
        return _FakePool(connection)

    monkeypatch.setattr(store._pool, "get", _get_pool)

    assert await store.reconcile(KEY) == 2
    query, args = connection.executed[0]
    assert "ORDER BY updated_at DESC, id DESC" in query
    assert args == ("thread_1", "agent-1")
