"""
Orchestration Package

Core components of a conversation turn:
- Conversation state store (upsert and duplicate reconciliation)
- Document synthesis from collected data
- Run failure classification

The turn orchestrator lives in ``docassist.orchestration.turns``.
"""

from .enums import FailureCategory, RunStatus, SessionStatus
from .failures import FailureVerdict, classify_run_failure, timeout_verdict
from .state import (
    ConversationDelta,
    ConversationRecord,
    RunSnapshot,
    SessionKey,
    ToolCall,
    ToolOutput,
    UserContact,
    UserContext,
)
from .store import (
    ConversationStateStore,
    InMemoryConversationStateStore,
    PostgresConversationStateStore,
    build_state_store,
)
from .synthesis import DocumentTemplate, FieldDescriptor, SynthesisResult, synthesize

__all__ = [
    "ConversationDelta",
    "ConversationRecord",
    "ConversationStateStore",
    "DocumentTemplate",
    "FailureCategory",
    "FailureVerdict",
    "FieldDescriptor",
    "InMemoryConversationStateStore",
    "PostgresConversationStateStore",
    "RunSnapshot",
    "RunStatus",
    "SessionKey",
    "SessionStatus",
    "SynthesisResult",
    "ToolCall",
    "ToolOutput",
    "UserContact",
    "UserContext",
    "build_state_store",
    "classify_run_failure",
    "synthesize",
    "timeout_verdict",
]
