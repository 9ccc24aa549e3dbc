from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from .enums import RunStatus, SessionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionKey(BaseModel):
    """Composite identity of a conversation: external thread plus owning agent."""

    thread_id: str = Field(min_length=1)
    agent_id: str = Field(min_length=1)

    model_config = {"frozen": True}


class UserContact(BaseModel):
    name: str
    email: str
    authenticated: bool = False


class UserContext(BaseModel):
    """Identity the caller vouches for on a turn (signed-in end user)."""

    is_authenticated: bool = Field(default=False, alias="isAuthenticated")
    name: str | None = None
    email: str | None = None

    model_config = {"populate_by_name": True}

    @property
    def has_identity(self) -> bool:
        return bool(self.is_authenticated and self.name and self.email)


class ConversationRecord(BaseModel):
    id: int = 0
    thread_id: str
    agent_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    last_message: str | None = None
    run_status: RunStatus | None = None
    run_id: str | None = None
    collected_data: dict[str, str] = Field(default_factory=dict)
    placeholder_mapping: dict[str, str] = Field(default_factory=dict)
    user_contact: UserContact | None = None
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> SessionKey:
        return SessionKey(thread_id=self.thread_id, agent_id=self.agent_id)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_contact and self.user_contact.authenticated)


class ConversationDelta(BaseModel):
    """Partial update applied by ``merge_write``; ``None`` means "leave unchanged"."""

    status: SessionStatus | None = None
    last_message: str | None = None
    run_status: RunStatus | None = None
    run_id: str | None = None
    collected_data: dict[str, str] | None = None
    placeholder_mapping: dict[str, str] | None = None
    user_contact: UserContact | None = None


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: str = "{}"


class ToolOutput(BaseModel):
    tool_call_id: str
    output: str


class RunSnapshot(BaseModel):
    """Run state as reported by the assistants API on a single status check."""

    run_id: str
    thread_id: str
    status: RunStatus
    tool_calls: list[ToolCall] = Field(default_factory=list)
    error_message: str | None = None
    error_code: str | None = None


def apply_delta(record: ConversationRecord, delta: ConversationDelta, *, merge: bool) -> ConversationRecord:
    """Return ``record`` updated by ``delta``.

    Maps are shallow-merged when ``merge`` is true and replaced otherwise; every
    other supplied field replaces the stored value.
    """
    updates: dict[str, Any] = {}
    for field_name in ("status", "last_message", "run_status", "run_id", "user_contact"):
        value = getattr(delta, field_name)
        if value is not None:
            updates[field_name] = value
    if delta.collected_data is not None:
        updates["collected_data"] = (
            {**record.collected_data, **delta.collected_data} if merge else dict(delta.collected_data)
        )
    if delta.placeholder_mapping is not None:
        updates["placeholder_mapping"] = (
            {**record.placeholder_mapping, **delta.placeholder_mapping}
            if merge
            else dict(delta.placeholder_mapping)
        )
    updates["updated_at"] = _utcnow()
    return record.model_copy(update=updates)


__all__ = [
    "ConversationDelta",
    "ConversationRecord",
    "RunSnapshot",
    "SessionKey",
    "ToolCall",
    "ToolOutput",
    "UserContact",
    "UserContext",
    "apply_delta",
]
