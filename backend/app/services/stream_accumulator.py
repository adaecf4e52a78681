"""Stream Accumulator — reads one streamed model turn into a StreamResult.

Invariants:
    - Content deltas are yielded as `content` events the moment they arrive
      (the only place below the runner that emits events)
    - A chunk-level error returns immediately, keeping partial content
    - finish_reason tool_calls → tool calls by ascending index; stop/length → no tools
    - Any exception while reading (mapped API error, malformed data) is a transport
      failure: after content = partial success (error None); before content = error
    - CancelledError is never caught
    - Stream ending with no finish reason returns what was accumulated, error None
    - `result` is set exactly once, after the generator is exhausted

Design Decisions:
    - Async generator + result attribute: events stream live through the same
      generator chain as the runner, no queue or second task
    - Merge rules live in core/stream_state.py (pure, unit-tested without IO)
"""

import logging
import time

from app.core.domain_types import TERMINAL_FINISH_REASONS, FinishReason
from app.core.errors import ErrorContext, OpenRouterAPIError
from app.core.stream_chunks import parse_chunk
from app.core.stream_state import StreamResult, StreamState, TransportFailure
from app.services.agent_runner_helpers import content_event

logger = logging.getLogger(__name__)


class StreamAccumulator:
    """One attempt at streaming a model turn. Create a fresh instance per attempt."""

    def __init__(self, client, context: ErrorContext | None = None):
        self.client = client
        self.context = context
        self.result: StreamResult | None = None

    async def run(
        self, model: str, messages: list[dict], tools: list[dict] | None,
    ):
        """Async generator yielding content events; sets self.result when done."""
        state = StreamState()
        started = time.monotonic()
        try:
            async with self.client.stream_chat(
                model=model, messages=messages, tools=tools,
                context=self.context,
            ) as stream:
                async for raw in stream:
                    state.chunk_count += 1
                    chunk = parse_chunk(raw)

                    if chunk.error:
                        logger.warning(
                            "Stream error after %d chunks: %s",
                            state.chunk_count, chunk.error,
                        )
                        self.result = state.finish_with_error(chunk.error)
                        return

                    if chunk.content_delta:
                        state.append_content(chunk.content_delta)
                        yield content_event(chunk.content_delta)

                    for delta in chunk.tool_call_deltas:
                        state.merge_tool_delta(delta)

                    if chunk.finish_reason == FinishReason.TOOL_CALLS.value:
                        self.result = state.finish_with_tools()
                        self._log_done(state, started, chunk.finish_reason)
                        return

                    if chunk.finish_reason in TERMINAL_FINISH_REASONS:
                        self.result = state.finish_text()
                        self._log_done(state, started, chunk.finish_reason)
                        return

        except OpenRouterAPIError as e:
            self._fail(state, e.message)
            return
        except Exception as e:
            # Malformed SSE data or an SDK error the client did not map
            self._fail(state, str(e) or type(e).__name__)
            return

        self.result = state.finish_text()
        logger.info(
            "Stream ended without finish reason: %d chunks, %d chars, %d partial tools",
            state.chunk_count, len(state.content), state.tool_call_count,
            extra={"elapsed_ms": _elapsed_ms(started)},
        )

    def _fail(self, state: StreamState, message: str) -> None:
        failure = TransportFailure(message, state.content)
        self.result = state.finish_after_failure(failure)
        if failure.recoverable:
            logger.info(
                "Stream threw after %d chunks but got %d chars, keeping partial: %s",
                state.chunk_count, len(state.content), message,
            )
        else:
            logger.warning(
                "Stream threw after %d chunks: %s", state.chunk_count, message,
            )

    def _log_done(
        self, state: StreamState, started: float, reason: str,
    ) -> None:
        logger.info(
            "Stream done (%s): %d chunks, %d chars, %d tools",
            reason, state.chunk_count, len(state.content),
            state.tool_call_count,
            extra={"elapsed_ms": _elapsed_ms(started)},
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
