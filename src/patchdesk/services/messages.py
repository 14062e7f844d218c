"""Convert caller messages into OpenAI chat-completion messages.

Two shapes are accepted: plain ``{role, content}`` dicts and UI messages
``{id, role, parts: [...]}`` as sent by the streaming chat client.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

_ROLES = ("system", "user", "assistant", "tool")
_RESOLVED_TOOL_STATES = ("output-available", "output-error")


def _tool_name(part: dict[str, Any]) -> str | None:
    ptype = part.get("type", "")
    if ptype == "dynamic-tool":
        return part.get("toolName")
    if isinstance(ptype, str) and ptype.startswith("tool-"):
        return ptype[len("tool-") :]
    return None


def _text_of(parts: list[dict[str, Any]]) -> str:
    return "".join(p.get("text", "") for p in parts if p.get("type") == "text")


def _split_steps(parts: list[Any]) -> list[list[dict[str, Any]]]:
    steps: list[list[dict[str, Any]]] = [[]]
    for part in parts:
        if not isinstance(part, dict):
            continue
        if part.get("type") == "step-start":
            if steps[-1]:
                steps.append([])
            continue
        steps[-1].append(part)
    return [s for s in steps if s]


def _convert_assistant_parts(parts: list[Any]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for step in _split_steps(parts):
        text = _text_of(step)
        tool_calls: list[dict[str, Any]] = []
        tool_results: list[dict[str, Any]] = []
        for part in step:
            name = _tool_name(part)
            if name is None:
                continue
            # Calls still awaiting a result would leave the transcript unbalanced
            if part.get("state") not in _RESOLVED_TOOL_STATES:
                continue
            call_id = part.get("toolCallId", "")
            tool_calls.append(
                {
                    "id": call_id,
                    "type": "function",
                    "function": {"name": name, "arguments": json.dumps(part.get("input") or {})},
                }
            )
            if part.get("state") == "output-error":
                output: Any = {"error": part.get("errorText", "")}
            else:
                output = part.get("output")
            tool_results.append(
                {
                    "role": "tool",
                    "tool_call_id": call_id,
                    "content": output if isinstance(output, str) else json.dumps(output),
                }
            )
        if not text and not tool_calls:
            continue
        msg: dict[str, Any] = {"role": "assistant", "content": text}
        if tool_calls:
            msg["tool_calls"] = tool_calls
        out.append(msg)
        out.extend(tool_results)
    return out


def to_model_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    result: list[dict[str, Any]] = []
    for msg in messages:
        role = msg.get("role")
        if role not in _ROLES:
            logger.warning("Skipping message with unsupported role: %r", role)
            continue

        parts = msg.get("parts")
        if isinstance(parts, list):
            if role == "assistant":
                result.extend(_convert_assistant_parts(parts))
            else:
                result.append({"role": role, "content": _text_of([p for p in parts if isinstance(p, dict)])})
            continue

        converted: dict[str, Any] = {"role": role, "content": msg.get("content") or ""}
        if role == "tool" and "tool_call_id" in msg:
            converted["tool_call_id"] = msg["tool_call_id"]
        if role == "assistant" and msg.get("tool_calls"):
            converted["tool_calls"] = msg["tool_calls"]
        result.append(converted)
    return result
