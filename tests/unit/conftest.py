"""Shared fakes for unit tests: scripted OpenAI streams and app wiring."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from patchdesk.config import AIConfig, AppConfig, AuthConfig
from patchdesk.services.ai_service import AIService
from patchdesk.services.auth_client import Session


@dataclass
class FakeToolCallFunction:
    name: str | None = None
    arguments: str | None = None


@dataclass
class FakeToolCallDelta:
    index: int = 0
    id: str | None = None
    function: FakeToolCallFunction | None = None


@dataclass
class FakeDelta:
    content: str | None = None
    tool_calls: list[Any] | None = None


@dataclass
class FakeChoice:
    delta: FakeDelta | None = None
    finish_reason: str | None = None


@dataclass
class FakeChunk:
    choices: list[FakeChoice] | None = None


def text_chunk(text: str) -> FakeChunk:
    return FakeChunk(choices=[FakeChoice(delta=FakeDelta(content=text))])


def finish_chunk(reason: str = "stop") -> FakeChunk:
    return FakeChunk(choices=[FakeChoice(delta=FakeDelta(), finish_reason=reason)])


def tool_call_chunks(call_id: str, name: str, arguments: dict[str, Any] | str, index: int = 0) -> list[FakeChunk]:
    """A tool call split the way providers stream it: name first, then argument fragments."""
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    half = len(raw) // 2
    return [
        FakeChunk(
            choices=[
                FakeChoice(
                    delta=FakeDelta(
                        tool_calls=[
                            FakeToolCallDelta(index=index, id=call_id, function=FakeToolCallFunction(name=name))
                        ]
                    )
                )
            ]
        ),
        FakeChunk(
            choices=[
                FakeChoice(
                    delta=FakeDelta(
                        tool_calls=[
                            FakeToolCallDelta(index=index, function=FakeToolCallFunction(arguments=raw[:half]))
                        ]
                    )
                )
            ]
        ),
        FakeChunk(
            choices=[
                FakeChoice(
                    delta=FakeDelta(
                        tool_calls=[
                            FakeToolCallDelta(index=index, function=FakeToolCallFunction(arguments=raw[half:]))
                        ]
                    )
                )
            ]
        ),
    ]


class FakeStream:
    """Async iterator over chunks, optionally sleeping before each one."""

    def __init__(self, chunks: list[FakeChunk], delay: float = 0.0) -> None:
        self._chunks = list(chunks)
        self._delay = delay
        self.closed = False

    def __aiter__(self) -> "FakeStream":
        return self

    async def __anext__(self) -> FakeChunk:
        if self._delay:
            await asyncio.sleep(self._delay)
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)

    async def close(self) -> None:
        self.closed = True


def make_ai_config(**overrides: Any) -> AIConfig:
    defaults: dict[str, Any] = {
        "api_key": "test-key",
        "base_url": "http://localhost:11434/v1",
        "model": "test-model",
        "max_duration": 30,
        "first_token_timeout": 5,
        "chunk_stall_timeout": 5,
    }
    defaults.update(overrides)
    return AIConfig(**defaults)


def make_ai_service(
    steps: list[list[FakeChunk]] | None = None,
    config: AIConfig | None = None,
    delay: float = 0.0,
    create: AsyncMock | None = None,
) -> AIService:
    """AIService whose client returns one scripted stream per create() call."""
    http_client = MagicMock()
    http_client.aclose = AsyncMock()
    with patch("patchdesk.services.ai_service.AsyncOpenAI"):
        service = AIService(config or make_ai_config(), http_client=http_client)
    mock_client = MagicMock()
    if create is None:
        create = AsyncMock(side_effect=[FakeStream(chunks, delay=delay) for chunks in (steps or [])])
    mock_client.chat.completions.create = create
    service.client = mock_client
    return service


@pytest.fixture
def fakes() -> SimpleNamespace:
    return SimpleNamespace(
        text=text_chunk,
        finish=finish_chunk,
        tool_call=tool_call_chunks,
        stream=FakeStream,
        config=make_ai_config,
        service=make_ai_service,
    )


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(ai=make_ai_config(), auth=AuthConfig(base_url="http://auth.test"))


def _fake_verifier(valid_cookie: str) -> Callable[..., Any]:
    async def verify(headers) -> Session | None:
        if valid_cookie in (headers.get("cookie") or ""):
            return Session(user_id="user-1", email="dev@example.com", name="dev")
        return None

    return verify


@pytest.fixture
def session_cookie() -> dict[str, str]:
    return {"better-auth.session_token": "valid-session"}


@pytest.fixture
def make_app(app_config: AppConfig):
    """Build the app with a scripted model and a cookie-based fake session check."""
    from patchdesk.app import create_app

    def _make(ai_service: AIService | None = None):
        auth_client = MagicMock()
        auth_client.aclose = AsyncMock()
        auth_client.sign_up_email = AsyncMock()
        return create_app(
            app_config,
            ai_service=ai_service or make_ai_service(),
            auth_client=auth_client,
            session_verifier=_fake_verifier("valid-session"),
        )

    return _make
