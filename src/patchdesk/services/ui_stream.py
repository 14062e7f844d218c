"""Encode agent events as UI message stream frames for the chat client.

Each frame is a JSON object sent as one server-sent event; the stream ends
with a literal ``[DONE]`` data line after the terminal frame.
"""

from __future__ import annotations

import uuid
from typing import Any

from .agent_loop import AgentEvent

STREAM_HEADERS = {"x-vercel-ai-ui-message-stream": "v1", "x-accel-buffering": "no"}
DONE_MARKER = "[DONE]"

TERMINAL_KINDS = ("done", "error")


class UIMessageStreamEncoder:
    """Stateful encoder for one assistant message."""

    def __init__(self, message_id: str | None = None) -> None:
        self.message_id = message_id or f"msg-{uuid.uuid4().hex}"
        self._text_id: str | None = None
        self._text_count = 0

    def start(self) -> list[dict[str, Any]]:
        return [{"type": "start", "messageId": self.message_id}]

    def _close_text(self) -> list[dict[str, Any]]:
        if self._text_id is None:
            return []
        frame = {"type": "text-end", "id": self._text_id}
        self._text_id = None
        return [frame]

    def encode(self, event: AgentEvent) -> list[dict[str, Any]]:
        kind = event.kind
        data = event.data

        if kind == "step_start":
            return [{"type": "start-step"}]

        if kind == "token":
            frames: list[dict[str, Any]] = []
            if self._text_id is None:
                self._text_count += 1
                self._text_id = f"{self.message_id}-text-{self._text_count}"
                frames.append({"type": "text-start", "id": self._text_id})
            frames.append({"type": "text-delta", "id": self._text_id, "delta": data["content"]})
            return frames

        if kind == "tool_call":
            return self._close_text() + [
                {
                    "type": "tool-input-available",
                    "toolCallId": data["id"],
                    "toolName": data["tool_name"],
                    "input": data["arguments"],
                }
            ]

        if kind == "tool_result":
            return [{"type": "tool-output-available", "toolCallId": data["id"], "output": data["output"]}]

        if kind == "tool_error":
            return [{"type": "tool-output-error", "toolCallId": data["id"], "errorText": data["error"]}]

        if kind == "step_end":
            return self._close_text() + [{"type": "finish-step"}]

        if kind == "done":
            return self._close_text() + [{"type": "finish"}]

        if kind == "error":
            return self._close_text() + [{"type": "error", "errorText": data.get("message", "An error occurred")}]

        return []
