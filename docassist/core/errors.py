from __future__ import annotations


class DocAssistError(RuntimeError):
    """Base class for failures raised by the orchestration core."""


class AgentNotFoundError(DocAssistError):
    """Raised when a turn references an agent profile that does not exist or is inactive."""


class StateStoreError(DocAssistError):
    """Raised when the conversation state store cannot be read or written."""


class AssistantAPIError(DocAssistError):
    """Raised when the external assistants API answers with an error status."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


class CollaboratorError(DocAssistError):
    """Raised when the search or document-tracking collaborator fails."""


__all__ = [
    "AgentNotFoundError",
    "AssistantAPIError",
    "CollaboratorError",
    "DocAssistError",
    "StateStoreError",
]
