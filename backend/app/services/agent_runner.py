"""Agent Runner — streaming tool-calling loop with SSE-ready event delivery.

Invariants:
    - Exactly one `done` event per invocation and it is always the last event
    - `done` content is never blank: an empty turn gets the fallback text
    - Raw exceptions never escape run() (CancelledError excepted: client disconnect)
    - Tool calls dispatched strictly sequentially, in the order the model returned them
    - Budget checked once per iteration, before streaming; never mid-stream
    - All events of iteration N are yielded before any event of iteration N+1
    - Iterations after one that produced any content (whitespace included) are
      separated by a "\\n\\n" content delta

Design Decisions:
    - Async generator over callbacks: the route iterates and encodes, backpressure is free
    - Empty tool catalog takes a single-pass path (retry controller, no tool inspection)
    - Transcript is append-only, kept in wire form alongside typed messages so
      each iteration sends it without re-encoding history
    - Pure helpers extracted to agent_runner_helpers.py
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

from app.core.agent_events import EventEmitter
from app.core.budget import ExecutionBudget
from app.core.domain_types import RunnerState
from app.core.errors import BudgetExceededError, ErrorContext
from app.core.messages import (
    AssistantMessage, Message, SystemMessage, ToolCall, ToolMessage,
)
from app.core.stream_state import StreamResult
from app.core.tool_protocols import ToolDispatcher
from app.services.agent_runner_helpers import (
    EMPTY_RESPONSE_ERROR, ITERATION_SEPARATOR,
    content_event, done_event, error_event, fallback_content,
    image_followup_message, parse_tool_arguments,
    tool_result_event, tool_status_event, unexpected_error_event,
)
from app.services.stream_retry import StreamRetryController
from app.services.system_prompt import build_system_prompt

logger = logging.getLogger(__name__)


class AgentRunner:
    """One instance per conversation turn. Client and dispatcher are injected."""

    def __init__(
        self,
        client,
        dispatcher: ToolDispatcher,
        *,
        model: str,
        budget: ExecutionBudget,
        max_retries: int = 2,
        retry_delay_ms: int = 2000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.dispatcher = dispatcher
        self.model = model
        self.budget = budget
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self._sleep = sleep
        self.state = RunnerState.INIT
        self.transcript: list[Message] = []
        self.final_content = ""
        self._wire: list[dict] = []
        self._output: list[str] = []
        self._has_text = False
        self._last_result = StreamResult()

    async def run(
        self,
        messages: list[Message],
        extra_context: str | None = None,
        session_id: str | None = None,
    ):
        """Async generator yielding agent events; the last one is always `done`."""
        emitter = EventEmitter()
        ctx = ErrorContext(session_id=session_id, model=self.model)
        self.budget.start()
        logger.info(
            "Agent run starting with %d messages", len(messages),
            extra={"session_id": session_id, "model": self.model},
        )

        self._output = []
        self._has_text = False
        try:
            tools = self.dispatcher.definitions()
            if tools:
                loop = self._tool_loop(messages, tools, extra_context, ctx)
            else:
                loop = self._single_pass(messages, ctx)
            async for event in loop:
                yield emitter.emit(event)
        except asyncio.CancelledError:
            logger.info("Agent run cancelled (client disconnect)",
                extra={"session_id": session_id})
            raise
        except Exception as e:
            logger.error("Unexpected error in agent runner: %s", e,
                extra={"session_id": session_id}, exc_info=True)
            self.state = RunnerState.ERROR
            yield emitter.emit(unexpected_error_event())

        content = "".join(self._output)
        if not self._has_text:
            logger.error(
                "Empty response after %dms", self.budget.elapsed_ms(),
                extra={"session_id": session_id},
            )
            yield emitter.emit(error_event(EMPTY_RESPONSE_ERROR, "EMPTY_RESPONSE"))
            content = fallback_content()

        self.final_content = content
        logger.info(
            "Agent run complete: %d chars, %d iterations, state=%s",
            len(content), self.budget.iterations_used, self.state.value,
            extra={
                "session_id": session_id,
                "elapsed_ms": self.budget.elapsed_ms(),
            },
        )
        yield emitter.emit(done_event(content))

    # -- Paths -----------------------------------------------------------------

    async def _single_pass(self, messages, ctx):
        """No tools: one retried stream, tool calls never inspected."""
        self._reset_transcript(list(messages))
        self.state = RunnerState.STREAMING
        self.budget.record_iteration()
        async for event in self._stream(None, ctx):
            yield event
        result = self._last_result
        if result.error and not result.content:
            self.state = RunnerState.ERROR
            yield error_event(result.error, "STREAM_ERROR")
            return
        self.state = RunnerState.DONE

    async def _tool_loop(self, messages, tools, extra_context, ctx):
        system = SystemMessage(build_system_prompt(tools, extra_context))
        self._reset_transcript([system, *messages])

        while not self.budget.iterations_exhausted():
            if self.budget.time_exceeded():
                self.state = RunnerState.BUDGET_EXCEEDED
                error = BudgetExceededError.time_limit(
                    self.budget.elapsed_ms(), ctx,
                )
                logger.warning(error.message,
                    extra={"session_id": ctx.session_id})
                yield error.to_sse_event()
                return

            iteration = self.budget.record_iteration()
            ctx.iteration = iteration
            logger.info(
                "Iteration %d (%ds elapsed)", iteration,
                self.budget.elapsed_ms() // 1000,
                extra={"session_id": ctx.session_id, "iteration": iteration},
            )
            iter_started = time.monotonic()

            if self._output:
                self._output.append(ITERATION_SEPARATOR)
                yield content_event(ITERATION_SEPARATOR)

            self.state = RunnerState.STREAMING
            async for event in self._stream(tools, ctx):
                yield event
            result = self._last_result

            logger.info(
                "Iteration %d done: content=%d chars, tools=%d, error=%s",
                iteration, len(result.content),
                len(result.tool_calls or ()), result.error or "none",
                extra={
                    "session_id": ctx.session_id, "iteration": iteration,
                    "elapsed_ms": int((time.monotonic() - iter_started) * 1000),
                },
            )

            if result.error:
                self.state = RunnerState.ERROR
                yield error_event(result.error, "STREAM_ERROR")
                return

            if not result.tool_calls:
                self.state = RunnerState.DONE
                return

            self.state = RunnerState.TOOL_EXECUTION
            self._append(AssistantMessage(
                content=result.content, tool_calls=result.tool_calls,
            ))
            for call in result.tool_calls:
                async for event in self._run_tool(call, ctx):
                    yield event

        self.state = RunnerState.BUDGET_EXCEEDED
        error = BudgetExceededError.iteration_limit(
            self.budget.max_iterations, ctx,
        )
        logger.warning(error.message, extra={"session_id": ctx.session_id})
        yield error.to_sse_event()

    # -- Steps -----------------------------------------------------------------

    async def _stream(self, tools: list[dict] | None, ctx: ErrorContext):
        """Relay content events from the retry controller; sets self._last_result."""
        controller = StreamRetryController(
            self.client,
            max_retries=self.max_retries,
            retry_delay_ms=self.retry_delay_ms,
            context=ctx,
            sleep=self._sleep,
        )
        async for event in controller.run(self.model, list(self._wire), tools):
            delta = event["data"]["content"]
            self._output.append(delta)
            if delta.strip():
                self._has_text = True
            yield event
        self._last_result = controller.result or StreamResult()

    async def _run_tool(self, call: ToolCall, ctx: ErrorContext):
        """status → dispatch → result, then feed the result back into the transcript."""
        args = parse_tool_arguments(call.arguments)
        if not args and call.arguments.strip() not in ("", "{}"):
            logger.warning(
                "Unparseable arguments for tool '%s', using {}", call.name,
                extra={"session_id": ctx.session_id, "tool_name": call.name},
            )
        yield tool_status_event(call.name, args)

        result = await self.dispatcher.execute(call.name, args)
        yield tool_result_event(call.name, result)

        self._append(ToolMessage(content=result.content, tool_call_id=call.id))
        if result.images:
            self._append(image_followup_message(call.name, result.images))

    # -- Transcript ------------------------------------------------------------

    def _reset_transcript(self, messages: list[Message]) -> None:
        self.transcript = []
        self._wire = []
        for message in messages:
            self._append(message)

    def _append(self, message: Message) -> None:
        self.transcript.append(message)
        self._wire.append(message.to_wire())
