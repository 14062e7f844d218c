"""Exception taxonomy for the chat endpoint."""

from __future__ import annotations

from typing import Any


class PatchdeskError(Exception):
    """Base class for errors raised by patchdesk."""


class Unauthorized(PatchdeskError):
    """Raised when a request carries no valid session."""


class ValidationError(PatchdeskError):
    """Raised when a request body does not match the chat request schema.

    ``details`` lists every violated field, not just the first one.
    """

    def __init__(self, details: list[dict[str, Any]]) -> None:
        super().__init__("Invalid request")
        self.details = details


class UnknownTool(PatchdeskError):
    """Raised when the model calls a tool that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class SchemaViolation(PatchdeskError):
    """Raised when tool input does not satisfy the tool's input schema."""

    def __init__(self, name: str, details: list[dict[str, Any]]) -> None:
        fields = ", ".join(".".join(str(p) for p in d.get("loc", ())) or "<root>" for d in details)
        super().__init__(f"Invalid input for {name}: {fields}")
        self.name = name
        self.details = details


class ClientExecutedTool(PatchdeskError):
    """Raised when dispatch is asked to run a tool the caller executes."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool '{name}' is executed by the client")
        self.name = name


class UpstreamModelError(PatchdeskError):
    """The model provider failed or the stream broke."""

    def __init__(self, message: str, code: str = "internal", retryable: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code, "retryable": self.retryable}
