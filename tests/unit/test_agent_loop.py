"""Tests for the agentic loop: tool dispatch, client tools, cancellation, limits."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from patchdesk.services.agent_loop import run_agent_loop
from patchdesk.tools import create_default_registry

PATCH_ARGS = {
    "path": "/src/a.ts",
    "diff": "--- /src/a.ts\n+++ /src/a.ts\n@@ -1 +1,2 @@\n function f(){}\n+console.log('f')\n",
    "explanation": "Log when f is defined",
}


async def _run(service, messages=None, **kwargs) -> list:
    return [
        e
        async for e in run_agent_loop(
            ai_service=service,
            registry=create_default_registry(),
            messages=messages if messages is not None else [{"role": "user", "content": "hi"}],
            system_prompt="sys",
            **kwargs,
        )
    ]


class TestTextOnly:
    @pytest.mark.asyncio
    async def test_single_step(self, fakes) -> None:
        service = fakes.service([[fakes.text("Hi"), fakes.text("!"), fakes.finish("stop")]])
        events = await _run(service)
        assert [e.kind for e in events] == ["step_start", "token", "token", "step_end", "done"]
        assert events[-1].data == {"finish_reason": "stop"}

    @pytest.mark.asyncio
    async def test_tools_declared_to_model(self, fakes) -> None:
        service = fakes.service([[fakes.finish("stop")]])
        await _run(service)
        tools = service.client.chat.completions.create.call_args[1]["tools"]
        assert [t["function"]["name"] for t in tools] == create_default_registry().list_tools()


class TestServerExecutedTool:
    @pytest.mark.asyncio
    async def test_patch_result_fed_back_before_model_continues(self, fakes) -> None:
        step1 = fakes.tool_call("call_1", "editFileWithPatch", PATCH_ARGS) + [fakes.finish("tool_calls")]
        step2 = [fakes.text("I proposed a patch."), fakes.finish("stop")]
        service = fakes.service([step1, step2])
        messages = [{"role": "user", "content": "add a console.log"}]

        events = await _run(service, messages=messages)

        kinds = [e.kind for e in events]
        assert kinds == [
            "step_start",
            "tool_call",
            "tool_result",
            "step_end",
            "step_start",
            "token",
            "step_end",
            "done",
        ]
        result = events[2].data["output"]
        assert result["status"] == "pending_approval"
        assert result["path"] == "/src/a.ts"

        # Second model call sees the assistant tool call and its result
        second_messages = service.client.chat.completions.create.call_args_list[1][1]["messages"]
        assert second_messages[-2]["role"] == "assistant"
        assert second_messages[-2]["tool_calls"][0]["function"]["name"] == "editFileWithPatch"
        assert second_messages[-1]["role"] == "tool"
        assert second_messages[-1]["tool_call_id"] == "call_1"
        assert json.loads(second_messages[-1]["content"])["status"] == "pending_approval"

    @pytest.mark.asyncio
    async def test_schema_violation_is_tool_error_not_fatal(self, fakes) -> None:
        step1 = fakes.tool_call("call_1", "editFileWithPatch", {"path": "/a.ts"}) + [fakes.finish("tool_calls")]
        step2 = [fakes.text("Sorry."), fakes.finish("stop")]
        service = fakes.service([step1, step2])
        events = await _run(service)
        errors = [e for e in events if e.kind == "tool_error"]
        assert len(errors) == 1
        assert errors[0].data["id"] == "call_1"
        assert "diff" in errors[0].data["error"]
        assert events[-1].kind == "done"

    @pytest.mark.asyncio
    async def test_unknown_tool_is_tool_error(self, fakes) -> None:
        step1 = fakes.tool_call("call_x", "formatDisk", {}) + [fakes.finish("tool_calls")]
        step2 = [fakes.finish("stop")]
        service = fakes.service([step1, step2])
        messages = [{"role": "user", "content": "hi"}]
        events = await _run(service, messages=messages)
        assert [e.kind for e in events if e.kind == "tool_error"] == ["tool_error"]
        assert "Unknown tool: formatDisk" in json.loads(messages[-1]["content"])["error"]
        assert events[-1].kind == "done"


class TestClientExecutedTool:
    @pytest.mark.asyncio
    async def test_relayed_without_result(self, fakes) -> None:
        step1 = fakes.tool_call("call_r", "readFile", {"path": "/src/a.ts"}) + [fakes.finish("tool_calls")]
        service = fakes.service([step1, [fakes.finish("stop")]])
        events = await _run(service)
        assert [e.kind for e in events] == ["step_start", "tool_call", "step_end", "done"]
        assert events[1].data == {"id": "call_r", "tool_name": "readFile", "arguments": {"path": "/src/a.ts"}}
        assert events[-1].data == {"finish_reason": "tool-calls"}
        assert service.client.chat.completions.create.call_count == 1

    @pytest.mark.asyncio
    async def test_mixed_step_resolves_server_tool_and_stops(self, fakes) -> None:
        step1 = (
            fakes.tool_call("call_p", "editFileWithPatch", PATCH_ARGS, index=0)
            + fakes.tool_call("call_c", "runCommand", {"command": "npm test"}, index=1)
            + [fakes.finish("tool_calls")]
        )
        service = fakes.service([step1])
        events = await _run(service)
        kinds = [e.kind for e in events]
        assert kinds == ["step_start", "tool_call", "tool_call", "tool_result", "step_end", "done"]
        assert events[3].data["id"] == "call_p"

    @pytest.mark.asyncio
    async def test_invalid_client_tool_input_reported(self, fakes) -> None:
        step1 = fakes.tool_call("call_c", "createFile", {"path": "/x"}) + [fakes.finish("tool_calls")]
        service = fakes.service([step1, [fakes.finish("stop")]])
        events = await _run(service)
        assert "tool_error" in [e.kind for e in events]
        assert service.client.chat.completions.create.call_count == 2


class TestTermination:
    @pytest.mark.asyncio
    async def test_model_error_is_terminal(self, fakes) -> None:
        service = fakes.service(create=AsyncMock(side_effect=RuntimeError("provider down")))
        events = await _run(service)
        assert [e.kind for e in events] == ["step_start", "error"]
        assert events[-1].data["code"] == "internal"

    @pytest.mark.asyncio
    async def test_step_limit(self, fakes) -> None:
        step = fakes.tool_call("call", "editFileWithPatch", PATCH_ARGS) + [fakes.finish("tool_calls")]
        service = fakes.service([list(step), list(step), list(step)])
        events = await _run(service, max_steps=2)
        assert service.client.chat.completions.create.call_count == 2
        assert events[-1].kind == "done"
        assert [e.kind for e in events].count("tool_result") == 2

    @pytest.mark.asyncio
    async def test_max_duration_surfaces_timeout(self, fakes) -> None:
        stream = fakes.stream([fakes.text("a"), fakes.text("b"), fakes.finish("stop")], delay=0.2)
        service = fakes.service(create=AsyncMock(return_value=stream))
        events = await _run(service, max_duration=0.3)
        assert events[-1].kind == "error"
        assert events[-1].data["code"] == "timeout"


class TestCancellation:
    @pytest.mark.asyncio
    async def test_no_events_after_cancel(self, fakes) -> None:
        chunks = [fakes.text(f"t{i}") for i in range(50)] + [fakes.finish("stop")]
        service = fakes.service(create=AsyncMock(return_value=fakes.stream(chunks, delay=0.02)))
        cancel = asyncio.Event()

        events = []
        async for event in run_agent_loop(
            ai_service=service,
            registry=create_default_registry(),
            messages=[{"role": "user", "content": "hi"}],
            system_prompt="sys",
            cancel_event=cancel,
        ):
            events.append(event)
            if event.kind == "token":
                cancel.set()

        assert [e.kind for e in events] == ["step_start", "token"]
        assert not any(e.kind in ("done", "error") for e in events)

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, fakes) -> None:
        service = fakes.service([[fakes.finish("stop")]])
        cancel = asyncio.Event()
        cancel.set()
        events = await _run(service, cancel_event=cancel)
        assert events == []
        service.client.chat.completions.create.assert_not_called()
