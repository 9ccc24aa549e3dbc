from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..orchestration.enums import RunStatus, SessionStatus
from ..orchestration.state import UserContact, UserContext


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TurnMessage(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str


class TurnRequest(_CamelModel):
    messages: list[TurnMessage] = Field(..., min_length=1)
    agent_id: str = Field(..., min_length=1)
    session_id: str | None = Field(default=None)
    user_context: UserContext | None = Field(default=None)

    @property
    def last_message(self) -> TurnMessage:
        return self.messages[-1]


class TurnResponse(_CamelModel):
    success: bool = True
    message: str
    session_id: str
    run_status: RunStatus
    conversation_complete: bool


class TurnErrorResponse(_CamelModel):
    success: bool = False
    error: str
    message: str
    retry_after: int | None = None


class SessionStateResponse(_CamelModel):
    thread_id: str
    agent_id: str
    status: SessionStatus
    last_message: str | None = None
    run_status: RunStatus | None = None
    run_id: str | None = None
    collected_data: dict[str, str] = Field(default_factory=dict)
    placeholder_mapping: dict[str, str] = Field(default_factory=dict)
    user_contact: UserContact | None = None
    updated_at: datetime


__all__ = [
    "SessionStateResponse",
    "TurnErrorResponse",
    "TurnMessage",
    "TurnRequest",
    "TurnResponse",
]
