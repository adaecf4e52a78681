"""Domain Types — enums and identity types shared by the agent runner and the API.

Invariants:
    - ChatSessionId / ChatMessageId wrap UUIDs — never use bare UUID in domain logic
    - Every wire-level string tag (role, finish reason, event type) is an Enum member
    - str Enums compare equal to their raw wire value ("tool_calls" == FinishReason.TOOL_CALLS)

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (SSE payloads are JSON)
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

ChatSessionId = NewType("ChatSessionId", UUID)
ChatMessageId = NewType("ChatMessageId", UUID)


# ─── Enums ───────────────────────────────────────────────────────

class Role(str, Enum):
    """Transcript roles understood by the chat-completions API."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Upstream signal marking why a model turn's stream ended."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"


# Finish reasons that end a turn without requesting tools (raw wire values)
TERMINAL_FINISH_REASONS = frozenset({FinishReason.STOP.value, FinishReason.LENGTH.value})


class AgentEventType(str, Enum):
    """Tags of the caller-facing event union."""
    CONTENT = "content"
    TOOL_STATUS = "tool_status"
    TOOL_RESULT = "tool_result"
    ERROR = "error"
    DONE = "done"


class RunnerState(str, Enum):
    """Orchestrator lifecycle — INIT → STREAMING ⇄ TOOL_EXECUTION → terminal."""
    INIT = "init"
    STREAMING = "streaming"
    TOOL_EXECUTION = "tool_execution"
    DONE = "done"
    ERROR = "error"
    BUDGET_EXCEEDED = "budget_exceeded"


class RunMode(str, Enum):
    """Budget preset selector: short interactive chat vs long autonomous run."""
    INTERACTIVE = "interactive"
    AUTONOMOUS = "autonomous"
