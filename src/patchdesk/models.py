"""Pydantic models for API request/response schemas."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CurrentFile(BaseModel):
    path: str
    content: str


class ChatRequest(BaseModel):
    """Body of ``POST /api/ai/chat``.

    Messages are passed through opaquely; the streaming client also sends
    bookkeeping keys (``id``, ``trigger``) which are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    messages: list[dict[str, Any]]
    current_file: CurrentFile | None = Field(default=None, alias="currentFile")

    @field_validator("current_file", mode="before")
    @classmethod
    def _reject_explicit_null(cls, value: Any) -> Any:
        # Only runs when the key is sent; omitting it means no current file
        if value is None:
            raise ValueError("currentFile must be an object when present")
        return value


class PatchProposal(BaseModel):
    path: str
    diff: str
    explanation: str
    status: Literal["pending_approval"] = "pending_approval"
    message: str


class SignUpRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(max_length=256)
    confirm_password: str = Field(max_length=256, alias="confirmPassword")
