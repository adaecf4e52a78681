"""Agent Schemas — Pydantic models for the data payload of each SSE agent event.

Invariants:
    - Every SSE record is {"type": <AgentEventType>, "data": <one of these models>}
    - Optional collections (sources, images) are omitted from JSON when absent
    - done.content is the full assembled assistant text for the invocation

Design Decisions:
    - Separate from chat schemas: agent events are internal to the streaming flow,
      chat schemas are for the REST API boundary
"""

from typing import Any

from pydantic import BaseModel


class SourceData(BaseModel):
    """Citation attached to a tool result."""
    title: str
    url: str


class ImageData(BaseModel):
    """Base64 image attached to a tool result (e.g. a browser screenshot)."""
    mime_type: str
    data: str


class ContentData(BaseModel):
    """Live text delta from the model."""
    content: str


class ToolStatusData(BaseModel):
    """Tool about to be invoked, with its parsed arguments."""
    tool: str
    args: dict[str, Any]


class ToolResultData(BaseModel):
    """Tool finished; result is the text fed back to the model."""
    tool: str
    result: str
    sources: list[SourceData] | None = None
    images: list[ImageData] | None = None


class ErrorData(BaseModel):
    """Non-fatal to the stream: a done event always follows."""
    message: str
    code: str | None = None


class DoneData(BaseModel):
    """Terminal event — exactly one per invocation, always last."""
    content: str
