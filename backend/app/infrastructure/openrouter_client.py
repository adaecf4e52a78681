"""Resilient OpenRouter Client — wraps AsyncOpenAI with retry, backoff, and error mapping.

Invariants:
    - stream_chat(): NO retry here — the stream retry controller owns streaming retries
      (retrying inside would duplicate already-delivered content)
    - create_completion(): rate limits (429) back off respecting Retry-After; transient
      errors (5xx, connection) retried up to max_retries; other 4xx fail immediately
    - Every SDK/transport failure is mapped to OpenRouterAPIError (core/errors.py)
    - CancelledError (BaseException) passes through uncaught

Design Decisions:
    - OpenAI SDK pointed at OpenRouter's base_url: the endpoint speaks chat-completions
    - SDK's own retries disabled (max_retries=0): one retry policy per call path
    - ±25% jitter on backoff: prevents thundering herd on shared rate limits
"""

import asyncio
import random
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
import openai
from openai import (
    APIError,
    APIConnectionError,
    APIStatusError,
    RateLimitError,
    APITimeoutError,
    InternalServerError,
)

from app.core.errors import OpenRouterAPIError, ErrorContext

logger = logging.getLogger(__name__)


class ResilientOpenRouterClient:
    """Wraps the OpenAI-compatible client with retry logic, timeouts, and error mapping."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 10_000,
        timeout_seconds: int = 60,
    ):
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=0,
        )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    @asynccontextmanager
    async def stream_chat(
        self,
        *,
        model: str,
        messages: list[dict],
        tools: list[dict] | None = None,
        context: ErrorContext | None = None,
    ) -> AsyncIterator[AsyncIterator]:
        """Open a streamed chat completion; yields the raw chunk iterator.

        Catches errors from both connection setup AND mid-stream (errors raised
        in the caller's `async for` propagate through the yield).
        """
        params: dict = {"model": model, "messages": messages, "stream": True}
        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"
        stream = None
        try:
            stream = await self.client.chat.completions.create(**params)
            yield stream
        except RateLimitError as e:
            raise OpenRouterAPIError(
                "Rate limit exceeded (streaming)",
                "rate_limit",
                retry_after_ms=self._extract_retry_after(e),
                context=context,
            )
        except APITimeoutError:
            raise OpenRouterAPIError(
                "API timeout during stream", "timeout", context=context,
            )
        except (APIConnectionError, InternalServerError) as e:
            raise OpenRouterAPIError(
                f"Connection error during stream: {e}",
                "connection_error",
                context=context,
            )
        except APIError as e:
            raise OpenRouterAPIError(
                str(e), "client_error", context=context,
            )
        except httpx.HTTPError as e:
            raise OpenRouterAPIError(
                f"Transport error during stream: {e}",
                "connection_error",
                context=context,
            )
        finally:
            if stream is not None:
                await self._close_quietly(stream)

    async def create_completion(
        self,
        *,
        model: str,
        messages: list[dict],
        context: ErrorContext | None = None,
    ) -> str:
        """Non-streaming completion with automatic retry. Returns message text ('' if none)."""
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.chat.completions.create(
                    model=model, messages=messages, stream=False,
                )
                self._log_success(response, attempt)
                return self._first_text(response)

            except RateLimitError as e:
                await self._handle_rate_limit(e, attempt, context)

            except APITimeoutError:
                raise OpenRouterAPIError(
                    "API timeout", "timeout", context=context,
                )

            except (APIConnectionError, InternalServerError) as e:
                await self._handle_transient_error(e, attempt, context)

            except APIStatusError as e:
                raise OpenRouterAPIError(
                    str(e), "client_error", context=context,
                )

            except Exception as e:
                logger.error(
                    f"Unexpected OpenRouter error: {e}", exc_info=True,
                )
                raise OpenRouterAPIError(
                    str(e), "unknown", context=context,
                )
        return ""

    def _first_text(self, response) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        content = getattr(choices[0].message, "content", None)
        return content if isinstance(content, str) else ""

    def _log_success(self, response, attempt: int) -> None:
        usage = getattr(response, "usage", None)
        logger.info(
            "OpenRouter API success",
            extra={
                "attempt": attempt + 1,
                "input_tokens": getattr(usage, "prompt_tokens", None),
                "output_tokens": getattr(usage, "completion_tokens", None),
            },
        )

    async def _handle_rate_limit(
        self, e: RateLimitError, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle rate limit error with retry or raise."""
        retry_after_ms = self._extract_retry_after(e)
        if attempt >= self.max_retries:
            raise OpenRouterAPIError(
                "Rate limit exceeded after retries",
                "rate_limit",
                retry_after_ms=retry_after_ms,
                context=context,
            )
        delay = retry_after_ms or self._backoff(attempt)
        logger.warning(
            f"Rate limit hit, retry after {delay}ms (attempt {attempt + 1})",
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, e: Exception, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle transient errors with retry or raise."""
        if attempt >= self.max_retries:
            raise OpenRouterAPIError(
                f"Transient failure after {self.max_retries} retries: {e}",
                "connection_error",
                context=context,
            )
        delay = self._backoff(attempt)
        logger.warning(f"Transient error, retry after {delay}ms: {e}")
        await asyncio.sleep(delay / 1000)

    async def _close_quietly(self, stream) -> None:
        close = getattr(stream, "close", None)
        if close is None:
            return
        try:
            await close()
        except Exception as e:
            logger.debug("Ignoring error while closing stream: %s", e)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _extract_retry_after(self, error: RateLimitError) -> int | None:
        """Extract Retry-After header (returns milliseconds)."""
        response = getattr(error, "response", None)
        if response is None:
            return None
        val = response.headers.get("retry-after")
        if val and val.isdigit():
            return int(val) * 1000
        return None
