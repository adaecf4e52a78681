"""Transcript Messages — per-role tagged variants and their wire encoding.

Invariants:
    - Each role carries only its own fields (tool_calls on assistant, tool_call_id on tool)
    - Messages are frozen: a transcript entry is never mutated after append
    - to_wire() is the single place a message becomes an OpenAI-compatible dict
    - message_from_dict() validates untrusted dicts once, at the boundary

Design Decisions:
    - Frozen dataclasses over pydantic here: core stays dependency-free and hot-path cheap
    - Images ride on UserMessage only: tool messages are text-only on the wire, so tool
      screenshots are re-surfaced to the model as a follow-up user turn
"""

from dataclasses import dataclass, field
from typing import Union

from app.core.domain_types import Role


@dataclass(frozen=True)
class ImageAttachment:
    """Base64 image payload returned by a tool or attached by the user."""
    mime_type: str
    data: str

    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


@dataclass(frozen=True)
class Source:
    """Citation surfaced to the UI alongside a tool result."""
    title: str
    url: str


@dataclass(frozen=True)
class ToolCall:
    """One model-requested tool invocation; arguments is raw JSON text."""
    id: str
    name: str
    arguments: str

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(frozen=True)
class SystemMessage:
    content: str
    role: Role = field(default=Role.SYSTEM, init=False)

    def to_wire(self) -> dict:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class UserMessage:
    content: str
    images: tuple[ImageAttachment, ...] = ()
    role: Role = field(default=Role.USER, init=False)

    def to_wire(self) -> dict:
        if not self.images:
            return {"role": self.role.value, "content": self.content}
        parts: list[dict] = [{"type": "text", "text": self.content}]
        parts.extend(
            {"type": "image_url", "image_url": {"url": img.data_url()}}
            for img in self.images
        )
        return {"role": self.role.value, "content": parts}


@dataclass(frozen=True)
class AssistantMessage:
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    role: Role = field(default=Role.ASSISTANT, init=False)

    def to_wire(self) -> dict:
        wire: dict = {
            "role": self.role.value,
            "content": self.content or None,
        }
        if self.tool_calls:
            wire["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        elif wire["content"] is None:
            wire["content"] = ""
        return wire


@dataclass(frozen=True)
class ToolMessage:
    content: str
    tool_call_id: str
    role: Role = field(default=Role.TOOL, init=False)

    def to_wire(self) -> dict:
        return {
            "role": self.role.value,
            "content": self.content,
            "tool_call_id": self.tool_call_id,
        }


Message = Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage]


def to_wire_messages(messages: list[Message]) -> list[dict]:
    return [m.to_wire() for m in messages]


def message_from_dict(raw: dict) -> Message:
    """Validate a {role, content} dict (persisted history, API input) into a Message.

    Raises ValueError on unknown roles or non-string content.
    """
    role = raw.get("role")
    content = raw.get("content")
    if content is None:
        content = ""
    if not isinstance(content, str):
        raise ValueError(f"Message content must be a string, got {type(content).__name__}")

    if role == Role.SYSTEM:
        return SystemMessage(content)
    if role == Role.USER:
        return UserMessage(content)
    if role == Role.ASSISTANT:
        return AssistantMessage(content)
    if role == Role.TOOL:
        tool_call_id = raw.get("tool_call_id")
        if not tool_call_id:
            raise ValueError("Tool message requires tool_call_id")
        return ToolMessage(content, tool_call_id)
    raise ValueError(f"Unknown message role: {role!r}")
