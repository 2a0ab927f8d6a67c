"""
Error types shared across the bridge.

Every error carries an optional ``cause`` so the original provider or
transport exception survives the translation into our own hierarchy:

    ToolBridgeError
    ├── ToolHostConnectionError   fatal to Session.connect()
    ├── CompletionError           model endpoint failure
    ├── ToolInvocationError       recovered into history by the loop
    ├── SchemaError               unusable tool parameter schema
    └── SessionNotConnectedError  ask() before connect()
"""

from __future__ import annotations


class ToolBridgeError(Exception):
    """Base class for all bridge errors."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ToolHostConnectionError(ToolBridgeError):
    """The tool host is unreachable or the server identifier cannot be resolved."""


class CompletionError(ToolBridgeError):
    """A completion call failed or returned no usable candidate."""


class ToolInvocationError(ToolBridgeError):
    """A tool call failed on the tool host."""

    def __init__(self, tool_name: str, message: str, cause: BaseException | None = None):
        super().__init__(message, cause=cause)
        self.tool_name = tool_name


class SchemaError(ToolBridgeError):
    """A tool parameter schema could not be normalized."""


class SessionNotConnectedError(ToolBridgeError):
    """The session was used before connect() succeeded."""
