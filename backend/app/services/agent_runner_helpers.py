"""Agent Runner Helpers — pure SSE event builders and transcript helpers.

Invariants:
    - All functions are pure (stateless, deterministic)
    - SSE event dicts follow {"type": <AgentEventType value>, "data": {...}}
    - parse_tool_arguments never raises: malformed or non-object JSON becomes {}
    - final_content never returns blank text

Design Decisions:
    - Extracted from agent_runner.py so the loop reads as control flow only
    - Event payloads go through schemas/agent.py models: one definition of each shape
"""

import json
from typing import Any

from app.core.domain_types import AgentEventType
from app.core.messages import ImageAttachment, UserMessage
from app.core.tool_protocols import ToolResult
from app.schemas.agent import (
    ContentData, DoneData, ErrorData, ImageData, SourceData,
    ToolResultData, ToolStatusData,
)

ITERATION_SEPARATOR = "\n\n"
EMPTY_RESPONSE_ERROR = (
    "Model returned no response. This may be a timeout or model error."
)
INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"


# -- SSE event builders --------------------------------------------------------

def content_event(delta: str) -> dict:
    return {
        "type": AgentEventType.CONTENT.value,
        "data": ContentData(content=delta).model_dump(),
    }


def tool_status_event(name: str, args: dict[str, Any]) -> dict:
    return {
        "type": AgentEventType.TOOL_STATUS.value,
        "data": ToolStatusData(tool=name, args=args).model_dump(),
    }


def tool_result_event(name: str, result: ToolResult) -> dict:
    """Build SSE event for a finished tool; empty sources/images are omitted."""
    data = ToolResultData(
        tool=name,
        result=result.content,
        sources=[
            SourceData(title=s.title, url=s.url) for s in result.sources
        ] or None,
        images=[
            ImageData(mime_type=i.mime_type, data=i.data)
            for i in result.images
        ] or None,
    )
    return {
        "type": AgentEventType.TOOL_RESULT.value,
        "data": data.model_dump(exclude_none=True),
    }


def error_event(message: str, code: str | None = None) -> dict:
    return {
        "type": AgentEventType.ERROR.value,
        "data": ErrorData(message=message, code=code).model_dump(
            exclude_none=True,
        ),
    }


def done_event(content: str) -> dict:
    return {
        "type": AgentEventType.DONE.value,
        "data": DoneData(content=content).model_dump(),
    }


def unexpected_error_event() -> dict:
    return error_event(INTERNAL_ERROR_MESSAGE, "INTERNAL_ERROR")


# -- Tool call helpers ---------------------------------------------------------

def parse_tool_arguments(raw: str) -> dict[str, Any]:
    """Parse accumulated argument JSON; anything but a JSON object yields {}."""
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def image_followup_message(
    tool_name: str, images: tuple[ImageAttachment, ...],
) -> UserMessage:
    """User turn that re-surfaces tool images (tool messages are text-only)."""
    return UserMessage(
        f"[Screenshot from {tool_name} tool - analyze this image]",
        images=images,
    )


# -- Output helpers ------------------------------------------------------------

def fallback_content() -> str:
    return f"*{EMPTY_RESPONSE_ERROR}*"
