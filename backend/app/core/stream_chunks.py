"""Stream Chunks — normalize raw transport chunks into one typed shape.

Invariants:
    - parse_chunk() accepts OpenAI SDK objects AND plain dicts (snake_case or camelCase)
    - Only choices[0] is considered; a chunk without choices has no delta
    - Non-string content deltas are dropped (never coerced)
    - A missing tool-call index defaults to 0 (single-call providers omit it)

Design Decisions:
    - Validated once at the transport boundary: the accumulator never touches raw chunks
    - Attribute-or-key lookup (_field) instead of isinstance branches per SDK version
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ToolCallDelta:
    """One fragment of a tool call, addressed by its per-turn index."""
    index: int
    id: str | None = None
    name: str | None = None
    arguments_fragment: str | None = None


@dataclass(frozen=True)
class Chunk:
    """Normalized stream unit. All fields optional."""
    error: str | None = None
    content_delta: str | None = None
    tool_call_deltas: tuple[ToolCallDelta, ...] = ()
    finish_reason: str | None = None


def _field(obj: Any, *names: str) -> Any:
    """First non-None value among attribute/key spellings."""
    if obj is None:
        return None
    for name in names:
        if isinstance(obj, dict):
            val = obj.get(name)
        else:
            val = getattr(obj, name, None)
        if val is not None:
            return val
    return None


def _error_message(err: Any) -> str:
    if isinstance(err, str):
        return err or "Stream error"
    msg = _field(err, "message")
    return msg if isinstance(msg, str) and msg else "Stream error"


def _parse_tool_call_delta(raw: Any) -> ToolCallDelta:
    fn = _field(raw, "function")
    index = _field(raw, "index")
    return ToolCallDelta(
        index=int(index) if index is not None else 0,
        id=_field(raw, "id"),
        name=_field(fn, "name"),
        arguments_fragment=_field(fn, "arguments"),
    )


def parse_chunk(raw: Any) -> Chunk:
    """Convert one upstream chunk (SDK object or dict) into a Chunk."""
    err = _field(raw, "error")
    if err:
        return Chunk(error=_error_message(err))

    choices = _field(raw, "choices") or []
    if not choices:
        return Chunk()
    choice = choices[0]
    delta = _field(choice, "delta")

    content = _field(delta, "content")
    raw_calls = _field(delta, "tool_calls", "toolCalls") or []
    finish = _field(choice, "finish_reason", "finishReason")

    return Chunk(
        content_delta=content if isinstance(content, str) else None,
        tool_call_deltas=tuple(_parse_tool_call_delta(tc) for tc in raw_calls),
        finish_reason=str(getattr(finish, "value", finish)) if finish else None,
    )
