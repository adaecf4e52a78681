"""Boundary Protocols — contracts between the agent loop and tool implementations.

Invariants:
    - Core NEVER imports concrete tools — dependency arrows point inward only
    - ToolDispatcher.execute never raises: failures come back as textual content
    - A dispatcher may hold per-session state (e.g. one browser page), so callers
      must not invoke it concurrently

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - ToolResult is a frozen dataclass: the runner reads it, never edits it
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from app.core.messages import ImageAttachment, Source


@dataclass(frozen=True)
class ToolResult:
    """Text for the model, plus optional UI citations and images."""
    content: str
    sources: tuple[Source, ...] = ()
    images: tuple[ImageAttachment, ...] = ()


ToolExecuteFn = Callable[[dict[str, Any]], Awaitable[ToolResult]]


@dataclass(frozen=True)
class ToolHandler:
    """A tool definition (catalog entry) paired with its implementation."""
    definition: dict
    execute: ToolExecuteFn

    @property
    def name(self) -> str:
        return self.definition["function"]["name"]


class ToolDispatcher(Protocol):
    """Structural contract the AgentRunner depends on."""

    def definitions(self) -> list[dict]: ...

    async def execute(self, name: str, args: dict[str, Any]) -> ToolResult: ...
