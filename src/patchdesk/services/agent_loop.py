"""Agentic loop driving one chat request: model steps plus tool dispatch."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncGenerator

from ..errors import SchemaViolation, UnknownTool
from ..tools import ToolRegistry
from .ai_service import AIService

logger = logging.getLogger(__name__)


@dataclass
class AgentEvent:
    kind: str
    data: dict[str, Any]


async def run_agent_loop(
    ai_service: AIService,
    registry: ToolRegistry,
    messages: list[dict[str, Any]],
    system_prompt: str,
    cancel_event: asyncio.Event | None = None,
    max_duration: float = 30.0,
    max_steps: int = 5,
) -> AsyncGenerator[AgentEvent, None]:
    """Run model steps until the model stops, yielding events.

    Event kinds: ``step_start``, ``token``, ``tool_call``, ``tool_result``,
    ``tool_error``, ``step_end``, then exactly one terminal ``done`` or
    ``error``. After ``cancel_event`` is set nothing more is yielded.

    Server-executed tool results are appended to ``messages`` and the model
    runs another step. A step that calls a client-executed tool ends the
    request; the caller sends the result back in its next request.
    """
    deadline = asyncio.get_running_loop().time() + max_duration
    tools_openai = registry.get_openai_tools()

    def _cancelled() -> bool:
        return cancel_event is not None and cancel_event.is_set()

    for step in range(1, max_steps + 1):
        if _cancelled():
            logger.info("Chat cancelled before step %d", step)
            return

        tool_calls_pending: list[dict[str, Any]] = []
        assistant_content = ""
        finished = False

        yield AgentEvent(kind="step_start", data={"step": step})

        model_stream = ai_service.stream_chat(
            messages,
            system_prompt,
            tools=tools_openai,
            cancel_event=cancel_event,
            deadline=deadline,
        )
        async with aclosing(model_stream):
            async for event in model_stream:
                if _cancelled():
                    break
                etype = event["event"]
                if etype == "token":
                    assistant_content += event["data"]["content"]
                    yield AgentEvent(kind="token", data=event["data"])
                elif etype == "tool_call":
                    tool_calls_pending.append(event["data"])
                    yield AgentEvent(
                        kind="tool_call",
                        data={
                            "id": event["data"]["id"],
                            "tool_name": event["data"]["function_name"],
                            "arguments": event["data"]["arguments"],
                        },
                    )
                elif etype == "error":
                    yield AgentEvent(kind="error", data=event["data"])
                    return
                elif etype == "done":
                    finished = True

        if _cancelled() or not finished:
            # stream_chat only ends without done/error when cancelled
            logger.info("Chat cancelled during step %d", step)
            return

        if not tool_calls_pending:
            yield AgentEvent(kind="step_end", data={"step": step})
            yield AgentEvent(kind="done", data={"finish_reason": "stop"})
            return

        messages.append(
            {
                "role": "assistant",
                "content": assistant_content,
                "tool_calls": [
                    {
                        "id": tc["id"],
                        "type": "function",
                        "function": {"name": tc["function_name"], "arguments": json.dumps(tc["arguments"])},
                    }
                    for tc in tool_calls_pending
                ],
            }
        )

        awaiting_client = False
        for tc in tool_calls_pending:
            name = tc["function_name"]
            try:
                if registry.has_tool(name) and registry.get(name).client_executed:
                    registry.validate_input(name, tc["arguments"])
                    # Left unresolved: the caller's environment runs it
                    awaiting_client = True
                    continue
                result = await registry.dispatch(name, tc["arguments"])
            except (UnknownTool, SchemaViolation) as e:
                logger.warning("Rejected tool call %s: %s", name, e)
                error_result = {"error": str(e)}
                if isinstance(e, SchemaViolation):
                    error_result["details"] = e.details
                yield AgentEvent(kind="tool_error", data={"id": tc["id"], "tool_name": name, "error": str(e)})
                messages.append({"role": "tool", "tool_call_id": tc["id"], "content": json.dumps(error_result)})
                continue

            yield AgentEvent(kind="tool_result", data={"id": tc["id"], "tool_name": name, "output": result})
            messages.append({"role": "tool", "tool_call_id": tc["id"], "content": json.dumps(result)})

        yield AgentEvent(kind="step_end", data={"step": step})

        if awaiting_client:
            yield AgentEvent(kind="done", data={"finish_reason": "tool-calls"})
            return

    logger.info("Reached step limit (%d); finishing", max_steps)
    yield AgentEvent(kind="done", data={"finish_reason": "tool-calls"})
