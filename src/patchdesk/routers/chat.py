"""AI chat streaming endpoint."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from sse_starlette.sse import EventSourceResponse

from ..errors import Unauthorized, ValidationError
from ..services.agent_loop import run_agent_loop
from ..services.messages import to_model_messages
from ..services.prompts import compose_system_prompt
from ..services.ui_stream import DONE_MARKER, STREAM_HEADERS, TERMINAL_KINDS, UIMessageStreamEncoder
from ..services.validation import validate_chat_request

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.post("/ai/chat")
async def chat(request: Request) -> Response:
    try:
        try:
            session = await request.app.state.session_gate.authorize(request.headers)
        except Unauthorized:
            logger.warning("Unauthorized chat request")
            return Response(status_code=401)

        try:
            body = validate_chat_request(await request.body())
        except ValidationError as e:
            logger.warning("Invalid chat request: %d violation(s)", len(e.details))
            return JSONResponse(status_code=400, content={"error": "Invalid request", "details": e.details})

        logger.info(
            "Chat request from %s with %d messages. Current file: %s",
            session.user_id,
            len(body.messages),
            body.current_file.path if body.current_file else None,
        )

        system_prompt = compose_system_prompt(body.current_file)
        ai_messages = to_model_messages(body.messages)
    except Exception:
        logger.exception("Chat setup error")
        return PlainTextResponse("Internal Server Error", status_code=500)

    ai_service = request.app.state.ai_service
    registry = request.app.state.tool_registry
    ai_config = request.app.state.config.ai
    cancel_event = asyncio.Event()

    async def event_generator():
        encoder = UIMessageStreamEncoder()
        for frame in encoder.start():
            yield {"data": json.dumps(frame)}
        try:
            async for agent_event in run_agent_loop(
                ai_service=ai_service,
                registry=registry,
                messages=ai_messages,
                system_prompt=system_prompt,
                cancel_event=cancel_event,
                max_duration=float(ai_config.max_duration),
                max_steps=ai_config.max_steps,
            ):
                for frame in encoder.encode(agent_event):
                    yield {"data": json.dumps(frame)}
                if agent_event.kind in TERMINAL_KINDS:
                    yield {"data": DONE_MARKER}
                    return
        except asyncio.CancelledError:
            logger.info("Chat stream cancelled by client")
            raise
        except Exception:
            logger.exception("Chat stream error")
            yield {"data": json.dumps({"type": "error", "errorText": "An internal error occurred"})}
            yield {"data": DONE_MARKER}
        finally:
            cancel_event.set()

    return EventSourceResponse(event_generator(), headers=STREAM_HEADERS)
