"""Stream Retry Controller — bounded retries around one StreamAccumulator attempt.

Invariants:
    - At most max_retries + 1 attempts; delay before attempt n (n >= 1) is n * retry_delay_ms
    - The first attempt with content or tool calls wins, even if it also reported an error
    - Attempts never merge: each one gets a fresh accumulator and state
    - Error-only and empty attempts are retried; exhaustion yields
      "Failed after N attempts: <last error>"

Design Decisions:
    - Retrying only when nothing was delivered guarantees no duplicated output:
      content events of a failed attempt can only be empty
    - Injectable sleep: tests assert delays without waiting
"""

import asyncio
import logging
from typing import Awaitable, Callable

from app.core.errors import ErrorContext
from app.core.stream_state import StreamResult
from app.services.stream_accumulator import StreamAccumulator

logger = logging.getLogger(__name__)

EMPTY_RESPONSE = "Model returned empty response"


class StreamRetryController:
    """Runs StreamAccumulator attempts until one yields usable data."""

    def __init__(
        self,
        client,
        max_retries: int = 2,
        retry_delay_ms: int = 2000,
        context: ErrorContext | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.context = context
        self._sleep = sleep
        self.attempts = 0
        self.result: StreamResult | None = None

    async def run(
        self, model: str, messages: list[dict], tools: list[dict] | None,
    ):
        """Async generator relaying content events; sets self.result when done."""
        total = self.max_retries + 1
        last_error = ""
        self.attempts = 0
        self.result = None

        for attempt in range(total):
            if attempt > 0:
                delay_ms = attempt * self.retry_delay_ms
                logger.info(
                    "Retrying OpenRouter call (attempt %d/%d) after %dms",
                    attempt + 1, total, delay_ms,
                    extra={"attempt": attempt + 1},
                )
                await self._sleep(delay_ms / 1000)

            self.attempts += 1
            accumulator = StreamAccumulator(self.client, self.context)
            async for event in accumulator.run(model, messages, tools):
                yield event
            result = accumulator.result or StreamResult()

            if result.has_data:
                if result.error:
                    logger.warning(
                        "Keeping partial output despite stream error: %s",
                        result.error, extra={"attempt": attempt + 1},
                    )
                self.result = result
                return

            last_error = result.error or EMPTY_RESPONSE
            logger.warning(
                "Stream attempt %d failed: %s", attempt + 1, last_error,
                extra={"attempt": attempt + 1},
            )

        self.result = StreamResult(
            content="",
            tool_calls=None,
            error=f"Failed after {total} attempts: {last_error}",
        )
