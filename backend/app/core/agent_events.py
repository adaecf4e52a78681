"""Agent Events — ordered, append-only channel from the runner to its caller.

Invariants:
    - Events are emitted in the order the runner produces them; nothing is buffered
    - Exactly one `done` per invocation and it is the last event: emit() after done raises
    - encode_sse() renders one event as a `data: <json>\\n\\n` record

Design Decisions:
    - The emitter does not own a transport: runner is an async generator and yields
      whatever emit() returns, so the route decides how events reach the wire
    - Counters instead of an event history: long autonomous runs stream thousands
      of content deltas
"""

import json

from app.core.domain_types import AgentEventType


class EventOrderError(RuntimeError):
    """An event was emitted after the terminal done event."""


class EventEmitter:
    """Enforces the terminal-done rule and counts emitted events per type."""

    def __init__(self) -> None:
        self.counts: dict[str, int] = {}
        self.done_emitted = False

    def emit(self, event: dict) -> dict:
        if self.done_emitted:
            raise EventOrderError(
                f"Event '{event.get('type')}' emitted after done",
            )
        etype = event["type"]
        self.counts[etype] = self.counts.get(etype, 0) + 1
        if etype == AgentEventType.DONE.value:
            self.done_emitted = True
        return event

    def count(self, etype: AgentEventType) -> int:
        return self.counts.get(etype.value, 0)


def encode_sse(event: dict) -> str:
    """Format event as SSE data line."""
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"
