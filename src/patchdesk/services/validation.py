"""Chat request validation at the HTTP boundary."""

from __future__ import annotations

from typing import Any

import pydantic

from ..errors import ValidationError
from ..models import ChatRequest


def _error_details(exc: pydantic.ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in err["loc"]], "msg": err["msg"], "type": err["type"]}
        for err in exc.errors(include_url=False)
    ]


def validate_chat_request(raw: bytes | str | Any) -> ChatRequest:
    """Parse and validate a chat request body.

    Accepts the raw request bytes (or an already decoded object). Raises
    ValidationError listing every violated field; malformed JSON is reported
    the same way.
    """
    try:
        if isinstance(raw, (bytes, bytearray, str)):
            return ChatRequest.model_validate_json(raw)
        return ChatRequest.model_validate(raw)
    except pydantic.ValidationError as e:
        raise ValidationError(_error_details(e)) from e
