from __future__ import annotations


class ToolError(RuntimeError):
    """Base class for tooling-related failures."""


class ToolArgumentsError(ToolError):
    """Raised when a tool call carries arguments the handler cannot act on.

    The message is addressed to the agent and returned verbatim as the tool output.
    """


class ToolConfigurationError(ToolError):
    """Raised when the router is built without a handler for every tool kind."""
