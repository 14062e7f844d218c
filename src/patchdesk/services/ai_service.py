"""OpenAI SDK wrapper for streaming chat completions."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncGenerator

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    RateLimitError,
)

from ..config import AIConfig
from ..errors import UpstreamModelError

logger = logging.getLogger(__name__)


class _StreamTimeoutError(Exception):
    """Raised when a wait exceeds its stall, first-token or total budget."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def _error_event(message: str, code: str, retryable: bool = False) -> dict[str, Any]:
    return {"event": "error", "data": UpstreamModelError(message, code, retryable).to_dict()}


class AIService:
    """Streams model output for one request at a time.

    Built once at startup and shared read-only; each call carries its own
    cancel event and deadline.
    """

    def __init__(self, config: AIConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        if http_client is None:
            timeout = httpx.Timeout(
                connect=float(config.connect_timeout),
                read=float(config.chunk_stall_timeout),
                write=float(config.connect_timeout),
                pool=float(config.connect_timeout),
            )
            # SECURITY-REVIEW: verify=False only when user explicitly sets verify_ssl: false in config
            http_client = httpx.AsyncClient(verify=config.verify_ssl, timeout=timeout)
        self._http_client = http_client
        self.client = AsyncOpenAI(
            base_url=config.base_url,
            api_key=config.api_key,
            http_client=http_client,
            max_retries=0,
        )

    async def aclose(self) -> None:
        await self._http_client.aclose()

    @staticmethod
    async def _race(
        awaitable: Any,
        cancel_event: asyncio.Event | None,
        timeout: float,
        reason: str,
    ) -> tuple[bool, Any]:
        """Await ``awaitable`` against a cancel event and a timeout.

        Returns (cancelled, result). Raises _StreamTimeoutError on timeout and
        re-raises whatever the awaitable raised (including StopAsyncIteration).
        """
        if timeout <= 0:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise _StreamTimeoutError(reason)

        task = asyncio.ensure_future(awaitable)
        wait_tasks: list[asyncio.Future[Any]] = [task]
        cancel_wait = asyncio.ensure_future(cancel_event.wait()) if cancel_event else None
        if cancel_wait:
            wait_tasks.append(cancel_wait)

        try:
            done, _pending = await asyncio.wait(wait_tasks, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            if cancel_wait:
                cancel_wait.cancel()
            raise

        if cancel_wait and cancel_wait in done:
            task.cancel()
            return True, None
        if cancel_wait:
            cancel_wait.cancel()
        if not done:
            task.cancel()
            raise _StreamTimeoutError(reason)
        return False, task.result()

    def _budget(self, deadline: float | None, limit: float) -> tuple[float, str]:
        if deadline is None:
            return limit, "stall"
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= limit:
            return remaining, "deadline"
        return limit, "stall"

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str,
        tools: list[dict[str, Any]] | None = None,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Run one model step, yielding token, tool_call, done and error events.

        ``deadline`` is an absolute event-loop time after which the step fails
        with a timeout error. Nothing is yielded once ``cancel_event`` is set.
        """
        full_messages = [{"role": "system", "content": system_prompt}] + messages
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": full_messages,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = tools

        if cancel_event and cancel_event.is_set():
            return

        stream: Any = None
        try:
            budget, reason = self._budget(deadline, float(self.config.first_token_timeout))
            if budget <= 0:
                raise _StreamTimeoutError(reason)
            cancelled, stream = await self._race(
                self.client.chat.completions.create(**kwargs), cancel_event, budget, reason
            )
            if cancelled:
                logger.info("Cancelled while connecting to model")
                return

            stream_iter = stream.__aiter__()
            current_tool_calls: dict[int, dict[str, Any]] = {}
            first = True

            while True:
                limit = self.config.first_token_timeout if first else self.config.chunk_stall_timeout
                budget, reason = self._budget(deadline, float(limit))
                try:
                    cancelled, chunk = await self._race(stream_iter.__anext__(), cancel_event, budget, reason)
                except StopAsyncIteration:
                    break
                if cancelled:
                    logger.info("Cancelled mid-stream")
                    return
                first = False

                choice = chunk.choices[0] if chunk.choices else None
                if not choice:
                    continue

                delta = choice.delta
                if delta and delta.content:
                    yield {"event": "token", "data": {"content": delta.content}}

                if delta and delta.tool_calls:
                    for tc in delta.tool_calls:
                        idx = tc.index
                        if idx not in current_tool_calls:
                            current_tool_calls[idx] = {"id": tc.id or "", "function_name": "", "arguments": ""}
                        if tc.id:
                            current_tool_calls[idx]["id"] = tc.id
                        if tc.function and tc.function.name:
                            current_tool_calls[idx]["function_name"] = tc.function.name
                        if tc.function and tc.function.arguments:
                            current_tool_calls[idx]["arguments"] += tc.function.arguments

                if choice.finish_reason:
                    break

            for _idx, tc_data in sorted(current_tool_calls.items()):
                try:
                    args = json.loads(tc_data["arguments"] or "{}")
                except json.JSONDecodeError:
                    logger.warning("Malformed arguments for tool call %s", tc_data["function_name"])
                    args = {}
                yield {
                    "event": "tool_call",
                    "data": {"id": tc_data["id"], "function_name": tc_data["function_name"], "arguments": args},
                }
            yield {"event": "done", "data": {}}

        except _StreamTimeoutError as e:
            if cancel_event and cancel_event.is_set():
                return
            if e.reason == "deadline":
                logger.warning("Chat request exceeded maximum duration (%ds)", self.config.max_duration)
                yield _error_event("Request exceeded maximum duration", "timeout")
            else:
                logger.warning("Model stream stalled")
                yield _error_event("Stream timed out", "timeout", retryable=True)
        except AuthenticationError:
            logger.error("Authentication with model provider failed")
            yield _error_event("Authentication with model provider failed", "auth_failed")
        except BadRequestError as e:
            body = getattr(e, "body", {}) or {}
            err_code = body.get("error", {}).get("code", "") if isinstance(body, dict) else ""
            if err_code == "context_length_exceeded" or "context_length" in str(e).lower():
                logger.warning("Context length exceeded: %s", e)
                yield _error_event("Conversation too long for model context window.", "context_length_exceeded")
            else:
                logger.exception("AI bad request error")
                yield _error_event("AI request error", "api_error")
        except RateLimitError as e:
            logger.warning("Rate limited by AI provider: %s", e)
            if cancel_event and cancel_event.is_set():
                return
            yield _error_event("Rate limited by API provider", "rate_limit", retryable=True)
        except APIStatusError as e:
            # After the subclasses above: AuthenticationError etc. are APIStatusErrors too
            logger.warning("API error %d: %s", e.status_code, type(e).__name__)
            if cancel_event and cancel_event.is_set():
                return
            yield _error_event(f"API error (HTTP {e.status_code})", "api_error", retryable=e.status_code >= 500)
        except APITimeoutError:
            logger.warning("Model request timed out")
            yield _error_event("Request timed out", "timeout", retryable=True)
        except APIConnectionError:
            logger.warning("Cannot connect to model API at %s", self.config.base_url)
            yield _error_event("Cannot connect to model API", "connection_error", retryable=True)
        except Exception:
            logger.exception("AI stream error")
            yield _error_event("An internal error occurred", "internal")
        finally:
            if stream is not None and hasattr(stream, "close"):
                try:
                    await asyncio.wait_for(stream.close(), timeout=2.0)
                except (asyncio.TimeoutError, Exception):
                    pass  # Don't let slow stream cleanup block cancellation

    async def validate_connection(self) -> tuple[bool, str, list[str]]:
        try:
            models = await self.client.models.list()
            model_ids = [m.id for m in models.data]
            return True, "Connected successfully", model_ids
        except AuthenticationError:
            logger.error("Authentication failed during connection validation")
            return False, "Authentication failed. Check your API key.", []
        except APITimeoutError:
            logger.warning("Connection validation timed out")
            return False, "Connection timed out. The API may be slow or unreachable.", []
        except APIConnectionError:
            logger.warning("Cannot connect to API at %s", self.config.base_url)
            return (
                False,
                f"Cannot connect to API at {self.config.base_url}. Check the URL and your network connection.",
                [],
            )
        except Exception as e:
            logger.error("AI connection validation failed: %s", e)
            return False, "Connection to AI service failed", []
