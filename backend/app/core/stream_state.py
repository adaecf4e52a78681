"""Stream State — pure reduction of normalized chunks into text + tool calls.

Invariants:
    - Content deltas concatenate in receipt order
    - Tool-call fragments merge by index: id/name overwritten only by non-empty values,
      argument fragments always appended in receipt order
    - finalized tool calls are ordered by ascending index
    - A transport failure after any content is recoverable (partial success, error=None);
      before any content it is fatal (error set, tool_calls None)

Design Decisions:
    - No IO, no async: the async read loop lives in services/stream_accumulator.py
    - TransportFailure makes the partial-vs-fatal decision explicit instead of
      catch-and-inspect in the caller
"""

from dataclasses import dataclass, field

from app.core.messages import ToolCall
from app.core.stream_chunks import ToolCallDelta


@dataclass(frozen=True)
class StreamResult:
    """Outcome of one streamed model turn."""
    content: str = ""
    tool_calls: tuple[ToolCall, ...] | None = None
    error: str | None = None

    @property
    def has_data(self) -> bool:
        """Usable output — takes precedence over any error when retrying."""
        return bool(self.content) or self.tool_calls is not None


@dataclass
class _PendingToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass(frozen=True)
class TransportFailure:
    """Exception raised by the transport mid-read, with the state it left behind."""
    message: str
    content_so_far: str

    @property
    def recoverable(self) -> bool:
        return len(self.content_so_far) > 0


@dataclass
class StreamState:
    """Mutable accumulator for a single model turn. One instance per attempt."""
    _content: list[str] = field(default_factory=list)
    _calls: dict[int, _PendingToolCall] = field(default_factory=dict)
    chunk_count: int = 0

    @property
    def content(self) -> str:
        return "".join(self._content)

    @property
    def tool_call_count(self) -> int:
        return len(self._calls)

    def append_content(self, delta: str) -> None:
        self._content.append(delta)

    def merge_tool_delta(self, delta: ToolCallDelta) -> None:
        pending = self._calls.setdefault(delta.index, _PendingToolCall())
        if delta.id:
            pending.id = delta.id
        if delta.name:
            pending.name = delta.name
        if delta.arguments_fragment:
            pending.arguments += delta.arguments_fragment

    def tool_calls(self) -> tuple[ToolCall, ...]:
        return tuple(
            ToolCall(id=p.id, name=p.name, arguments=p.arguments)
            for _, p in sorted(self._calls.items())
        )

    # -- Terminal results ----------------------------------------------------

    def finish_with_tools(self) -> StreamResult:
        return StreamResult(self.content, self.tool_calls(), None)

    def finish_text(self) -> StreamResult:
        return StreamResult(self.content, None, None)

    def finish_with_error(self, message: str) -> StreamResult:
        return StreamResult(self.content, None, message)

    def finish_after_failure(self, failure: TransportFailure) -> StreamResult:
        if failure.recoverable:
            calls = self.tool_calls() if self._calls else None
            return StreamResult(self.content, calls, None)
        return StreamResult(self.content, None, failure.message)
