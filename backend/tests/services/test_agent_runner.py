"""Integration Tests: AgentRunner — streaming tool-calling loop.

Invariants:
    - Every run() ends with exactly one done event, and done is last
    - done content is never blank (fallback text on an empty turn)
    - Tool calls run in the order returned: status0, result0, status1, result1
    - Empty tool catalog → only content and done events
    - Unparseable tool arguments → {} and the loop continues without an error event
    - Time budget below one iteration → exactly one iteration, then a time-limit error

Design Decisions:
    - Mock at the transport boundary (MockOpenRouterClient), real ToolDispatch
    - Budget clock injected: elapsed time is driven by the test, no sleeping
    - Retry sleep injected as a no-op: retry paths run instantly
"""

from app.core.budget import ExecutionBudget
from app.core.domain_types import RunnerState
from app.core.messages import AssistantMessage, ToolMessage, UserMessage
from app.services.agent_runner import AgentRunner
from app.services.agent_runner_helpers import EMPTY_RESPONSE_ERROR
from app.services.tool_dispatch import ToolDispatch, define_tool

from tests.services.mock_openrouter import (
    MockOpenRouterClient,
    Scripted,
    content_chunk,
    error_chunk,
    finish_chunk,
    text_chunks,
    tool_call_chunks,
    tool_delta_chunk,
)


# -- Helpers -------------------------------------------------------------------

class _Clock:
    """Manual monotonic clock (seconds)."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


async def _no_sleep(_seconds):
    return None


def _runner(client, dispatch=None, max_iterations=5, max_elapsed_ms=600_000,
            clock=None, max_retries=2):
    budget = ExecutionBudget(
        max_iterations=max_iterations,
        max_elapsed_ms=max_elapsed_ms,
        clock=clock or _Clock(),
    )
    return AgentRunner(
        client,
        dispatch if dispatch is not None else ToolDispatch(),
        model="test/model",
        budget=budget,
        max_retries=max_retries,
        retry_delay_ms=0,
        sleep=_no_sleep,
    )


async def _collect(runner, text="Hello"):
    events = []
    async for ev in runner.run([UserMessage(text)]):
        events.append(ev)
    return events


def _events_of_type(events, t):
    return [e for e in events if e["type"] == t]


def _types(events):
    return [e["type"] for e in events]


# ==============================================================================
# Single-pass path (no tools)
# ==============================================================================


async def test_empty_catalog_yields_only_content_and_done():
    client = MockOpenRouterClient([text_chunks("Hi ", "there")])
    runner = _runner(client)

    events = await _collect(runner)

    assert set(_types(events)) == {"content", "done"}
    assert events[-1] == {"type": "done", "data": {"content": "Hi there"}}
    assert runner.state == RunnerState.DONE


async def test_empty_catalog_sends_no_tools_and_no_system_prompt():
    client = MockOpenRouterClient([text_chunks("ok")])
    await _collect(_runner(client), "question")

    assert client.calls[0]["tools"] is None
    assert client.calls[0]["messages"] == [{"role": "user", "content": "question"}]


async def test_empty_catalog_ignores_tool_call_deltas():
    """Single pass never inspects tool calls, even if the model sends them."""
    client = MockOpenRouterClient([
        tool_call_chunks([("call_1", "lookup", "{}")], text="Answer"),
    ])
    events = await _collect(_runner(client))

    assert "tool_status" not in _types(events)
    assert events[-1]["data"]["content"] == "Answer"
    assert len(client.calls) == 1


async def test_empty_catalog_failure_reports_error_then_fallback_done():
    client = MockOpenRouterClient([
        [error_chunk("boom")], [error_chunk("boom")], [error_chunk("boom")],
    ])
    events = await _collect(_runner(client))

    errors = _events_of_type(events, "error")
    assert errors[0]["data"]["message"] == "Failed after 3 attempts: boom"
    assert errors[-1]["data"]["message"] == EMPTY_RESPONSE_ERROR
    assert events[-1]["data"]["content"] == f"*{EMPTY_RESPONSE_ERROR}*"


# ==============================================================================
# Tool loop
# ==============================================================================


async def test_tool_call_executes_and_loops(recording_dispatch):
    client = MockOpenRouterClient([
        tool_call_chunks([("call_1", "lookup", '{"q": "weather"}')]),
        text_chunks("It is sunny."),
    ])
    runner = _runner(client, recording_dispatch["dispatch"])

    events = await _collect(runner)

    assert recording_dispatch["log"] == [{"tool": "lookup", "args": {"q": "weather"}}]
    status = _events_of_type(events, "tool_status")[0]
    assert status["data"] == {"tool": "lookup", "args": {"q": "weather"}}
    result = _events_of_type(events, "tool_result")[0]
    assert result["data"]["result"] == "found weather"
    assert result["data"]["sources"] == [
        {"title": "Example", "url": "https://example.com"},
    ]
    assert "images" not in result["data"]
    assert events[-1]["data"]["content"] == "It is sunny."
    assert len(client.calls) == 2


async def test_tool_results_fed_back_into_transcript(recording_dispatch):
    client = MockOpenRouterClient([
        tool_call_chunks([("call_1", "lookup", '{"q": "x"}')], text="Checking"),
        text_chunks("Done"),
    ])
    runner = _runner(client, recording_dispatch["dispatch"])
    await _collect(runner)

    second = client.calls[1]["messages"]
    assert second[0]["role"] == "system"
    assert second[2] == {
        "role": "assistant",
        "content": "Checking",
        "tool_calls": [{
            "id": "call_1", "type": "function",
            "function": {"name": "lookup", "arguments": '{"q": "x"}'},
        }],
    }
    assert second[3] == {
        "role": "tool", "content": "found x", "tool_call_id": "call_1",
    }
    assert isinstance(runner.transcript[2], AssistantMessage)
    assert isinstance(runner.transcript[3], ToolMessage)


async def test_two_tool_calls_emit_in_call_order(recording_dispatch):
    client = MockOpenRouterClient([
        tool_call_chunks([
            ("call_a", "lookup", '{"q": "first"}'),
            ("call_b", "screenshot", "{}"),
        ]),
        text_chunks("Both done"),
    ])
    events = await _collect(_runner(client, recording_dispatch["dispatch"]))

    tool_events = [
        (e["type"], e["data"]["tool"]) for e in events
        if e["type"] in ("tool_status", "tool_result")
    ]
    assert tool_events == [
        ("tool_status", "lookup"),
        ("tool_result", "lookup"),
        ("tool_status", "screenshot"),
        ("tool_result", "screenshot"),
    ]
    assert [c["tool"] for c in recording_dispatch["log"]] == ["lookup", "screenshot"]


async def test_tool_calls_reassembled_by_index_not_arrival(recording_dispatch):
    """Fragments for index 1 arriving before index 0 still dispatch 0 first."""
    client = MockOpenRouterClient([
        [
            tool_delta_chunk(1, "call_b", "screenshot", "{"),
            tool_delta_chunk(0, "call_a", "lookup", '{"q":'),
            tool_delta_chunk(1, arguments="}"),
            tool_delta_chunk(0, arguments=' "z"}'),
            finish_chunk("tool_calls"),
        ],
        text_chunks("ok"),
    ])
    await _collect(_runner(client, recording_dispatch["dispatch"]))

    assert recording_dispatch["log"] == [
        {"tool": "lookup", "args": {"q": "z"}},
        {"tool": "screenshot", "args": {}},
    ]


async def test_unparseable_arguments_become_empty_and_loop_continues(
    recording_dispatch,
):
    client = MockOpenRouterClient([
        tool_call_chunks([("call_1", "lookup", '{"q": "unterminated')]),
        text_chunks("Recovered"),
    ])
    events = await _collect(_runner(client, recording_dispatch["dispatch"]))

    assert recording_dispatch["log"] == [{"tool": "lookup", "args": {}}]
    assert _events_of_type(events, "tool_status")[0]["data"]["args"] == {}
    assert _events_of_type(events, "error") == []
    assert events[-1]["data"]["content"] == "Recovered"


async def test_tool_images_resurface_as_user_message(recording_dispatch):
    client = MockOpenRouterClient([
        tool_call_chunks([("call_1", "screenshot", "{}")]),
        text_chunks("I see a page"),
    ])
    events = await _collect(_runner(client, recording_dispatch["dispatch"]))

    result = _events_of_type(events, "tool_result")[0]
    assert result["data"]["images"] == [
        {"mime_type": "image/png", "data": "iVBORw0KGgo="},
    ]
    followup = client.calls[1]["messages"][-1]
    assert followup["role"] == "user"
    assert followup["content"][0] == {
        "type": "text",
        "text": "[Screenshot from screenshot tool - analyze this image]",
    }
    assert followup["content"][1]["image_url"]["url"] == (
        "data:image/png;base64,iVBORw0KGgo="
    )


async def test_unknown_tool_result_is_text_not_error(recording_dispatch):
    client = MockOpenRouterClient([
        tool_call_chunks([("call_1", "teleport", "{}")]),
        text_chunks("Sorry"),
    ])
    events = await _collect(_runner(client, recording_dispatch["dispatch"]))

    result = _events_of_type(events, "tool_result")[0]
    assert result["data"]["result"] == 'Error: Unknown tool "teleport"'
    assert _events_of_type(events, "error") == []


async def test_separator_between_iterations_with_prior_content(recording_dispatch):
    client = MockOpenRouterClient([
        tool_call_chunks([("call_1", "lookup", "{}")], text="Let me check."),
        text_chunks("Here it is."),
    ])
    events = await _collect(_runner(client, recording_dispatch["dispatch"]))

    contents = [e["data"]["content"] for e in _events_of_type(events, "content")]
    assert contents == ["Let me check.", "\n\n", "Here it is."]
    assert events[-1]["data"]["content"] == "Let me check.\n\nHere it is."


async def test_no_separator_when_prior_iteration_had_no_text(recording_dispatch):
    client = MockOpenRouterClient([
        tool_call_chunks([("call_1", "lookup", "{}")]),
        text_chunks("Answer"),
    ])
    events = await _collect(_runner(client, recording_dispatch["dispatch"]))

    contents = [e["data"]["content"] for e in _events_of_type(events, "content")]
    assert contents == ["Answer"]


async def test_separator_after_whitespace_only_output(recording_dispatch):
    client = MockOpenRouterClient([
        tool_call_chunks([("call_1", "lookup", "{}")], text=" "),
        text_chunks("Answer"),
    ])
    events = await _collect(_runner(client, recording_dispatch["dispatch"]))

    contents = [e["data"]["content"] for e in _events_of_type(events, "content")]
    assert contents == [" ", "\n\n", "Answer"]


async def test_system_prompt_lists_catalog_and_extra_context(recording_dispatch):
    client = MockOpenRouterClient([text_chunks("ok")])
    runner = _runner(client, recording_dispatch["dispatch"])

    async for _ in runner.run(
        [UserMessage("hi")], extra_context="\n\n## Memory\nUser likes tea",
    ):
        pass

    system = client.calls[0]["messages"][0]
    assert system["role"] == "system"
    assert "- lookup: Look something up" in system["content"]
    assert "- screenshot: Capture the page" in system["content"]
    assert system["content"].endswith("## Memory\nUser likes tea")
    assert client.calls[0]["tools"] == recording_dispatch["dispatch"].definitions()


# ==============================================================================
# Termination
# ==============================================================================


async def test_stream_error_with_partial_content_stops_loop(recording_dispatch):
    client = MockOpenRouterClient([
        [content_chunk("Partial"), error_chunk("upstream overloaded")],
    ])
    runner = _runner(client, recording_dispatch["dispatch"])
    events = await _collect(runner)

    assert _types(events) == ["content", "error", "done"]
    assert events[1]["data"]["message"] == "upstream overloaded"
    assert events[-1]["data"]["content"] == "Partial"
    assert len(client.calls) == 1
    assert runner.state == RunnerState.ERROR


async def test_all_empty_turn_yields_fallback_done(recording_dispatch):
    client = MockOpenRouterClient([
        [finish_chunk("stop")], [finish_chunk("stop")], [finish_chunk("stop")],
    ])
    events = await _collect(_runner(client, recording_dispatch["dispatch"]))

    done = events[-1]
    assert done["type"] == "done"
    assert done["data"]["content"].strip()
    assert done["data"]["content"] == f"*{EMPTY_RESPONSE_ERROR}*"
    assert _events_of_type(events, "error")[-1]["data"]["message"] == EMPTY_RESPONSE_ERROR


async def test_time_budget_below_one_iteration_stops_after_it(recording_dispatch):
    clock = _Clock()

    async def slow_lookup(args):
        clock.now += 2.0
        return await recording_dispatch["dispatch"].execute("lookup", args)

    dispatch = ToolDispatch()
    dispatch.register(define_tool("lookup", "Look", None, slow_lookup))

    client = MockOpenRouterClient([
        tool_call_chunks([("call_1", "lookup", "{}")], text="Working"),
        text_chunks("never reached"),
    ])
    runner = _runner(client, dispatch, max_elapsed_ms=1000, clock=clock)
    events = await _collect(runner)

    assert len(client.calls) == 1
    errors = _events_of_type(events, "error")
    assert len(errors) == 1
    assert "time limit" in errors[0]["data"]["message"].lower()
    assert errors[0]["data"]["code"] == "BUDGET_EXCEEDED"
    assert events[-1]["data"]["content"] == "Working"
    assert runner.state == RunnerState.BUDGET_EXCEEDED


async def test_iteration_cap_reports_limit(recording_dispatch):
    client = MockOpenRouterClient([
        tool_call_chunks([("c1", "lookup", "{}")], text="one"),
        tool_call_chunks([("c2", "lookup", "{}")], text="two"),
    ])
    runner = _runner(client, recording_dispatch["dispatch"], max_iterations=2)
    events = await _collect(runner)

    assert len(client.calls) == 2
    error = _events_of_type(events, "error")[-1]
    assert error["data"]["message"] == "Iteration limit reached (2 iterations). Stopping."
    assert events[-1]["data"]["content"] == "one\n\ntwo"


async def test_done_is_last_and_unique(recording_dispatch):
    client = MockOpenRouterClient([
        tool_call_chunks([("c1", "lookup", "{}")], text="a"),
        [error_chunk("x")], [error_chunk("x")], [error_chunk("x")],
    ])
    events = await _collect(_runner(client, recording_dispatch["dispatch"]))

    assert _types(events).count("done") == 1
    assert events[-1]["type"] == "done"


async def test_unexpected_exception_becomes_error_and_done():
    """Client misconfiguration (no scripted response) never escapes run()."""
    client = MockOpenRouterClient([])
    runner = _runner(client)
    events = await _collect(runner)

    assert _types(events) == ["error", "error", "done"]
    assert events[0]["data"]["code"] == "INTERNAL_ERROR"
    assert events[-1]["data"]["content"] == f"*{EMPTY_RESPONSE_ERROR}*"
    assert runner.state == RunnerState.ERROR


async def test_transport_failure_after_content_keeps_partial(recording_dispatch):
    client = MockOpenRouterClient([
        Scripted([content_chunk("Half an answer")], fail_with="reset by peer"),
    ])
    events = await _collect(_runner(client, recording_dispatch["dispatch"]))

    assert _events_of_type(events, "error") == []
    assert events[-1]["data"]["content"] == "Half an answer"
    assert len(client.calls) == 1
