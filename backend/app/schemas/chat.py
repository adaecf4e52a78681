"""Chat Schemas — request/response models for the chat REST + SSE boundary.

Invariants:
    - ChatRequest.content: 1-50000 chars after stripping
    - ChatRequest.mode and RegenerateRequest.mode default to interactive (small iteration cap)
    - model fields accept any OpenRouter model slug ("vendor/name[:variant]")

Design Decisions:
    - mode is a request field, not a separate endpoint: autonomous runs share
      the whole persistence and streaming path, only the budget differs
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.domain_types import RunMode

_MODEL_PATTERN = r"^[\w.\-]+(/[\w.\-:]+)?$"


class SessionCreate(BaseModel):
    """New chat session; model falls back to the configured agent model."""
    title: str | None = Field(None, max_length=200)
    model: str | None = Field(None, max_length=200, pattern=_MODEL_PATTERN)


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    model: str
    message_count: int
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    role: str
    content: str
    model: str | None = None
    created_at: datetime


class ChatRequest(BaseModel):
    """One user turn to run through the agent."""
    session_id: UUID
    content: str = Field(min_length=1, max_length=50_000)
    model: str | None = Field(None, max_length=200, pattern=_MODEL_PATTERN)
    mode: RunMode = RunMode.INTERACTIVE

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content cannot be empty or whitespace")
        return v


class SessionRecordData(BaseModel):
    """Route-level record sent after `done`: persisted ids and any new title."""
    message_id: UUID
    new_title: str | None = None


class RegenerateRequest(BaseModel):
    """Re-run the agent over the stored history (last stored turn must be the user's)."""
    session_id: UUID
    model: str | None = Field(None, max_length=200, pattern=_MODEL_PATTERN)
    mode: RunMode = RunMode.INTERACTIVE


class TruncateResponse(BaseModel):
    deleted: int
    remaining_count: int
