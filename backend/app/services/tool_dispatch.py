"""Tool Dispatch — explicit registry routing tool_name to its handler.

Invariants:
    - Every tool->handler mapping is registered explicitly, in code or through the
      tool_providers setting; nothing is auto-discovered
    - definitions() returns the catalog in registration order
    - execute() never raises: unknown tools and handler exceptions become textual content
    - Every dispatch is logged with tool name and elapsed time

Design Decisions:
    - Explicit register() over import-time decorators: the catalog an agent sees is
      exactly what the composition root (main.py lifespan) registered
    - Provider factories named in settings keep concrete tools out of this repo
    - Definitions validated with pydantic at registration, not per request
    - Concrete tools (mail, calendar, browser, search) live outside this package and
      plug in through ToolHandler
"""

import importlib
import logging
import time
from typing import Any, Iterable

from pydantic import ValidationError

from app.core.errors import ToolDefinitionError
from app.core.tool_protocols import ToolExecuteFn, ToolHandler, ToolResult
from app.schemas.tools import ToolDefinition

logger = logging.getLogger(__name__)


def function_definition(
    name: str, description: str, parameters: dict | None = None,
) -> dict:
    """Build a catalog entry in the chat-completions tool format."""
    definition: dict = {
        "type": "function",
        "function": {"name": name, "description": description},
    }
    if parameters is not None:
        definition["function"]["parameters"] = parameters
    return definition


def define_tool(
    name: str, description: str, parameters: dict | None,
    execute: ToolExecuteFn,
) -> ToolHandler:
    return ToolHandler(
        definition=function_definition(name, description, parameters),
        execute=execute,
    )


class ToolDispatch:
    """Routes tool_name -> handler. Explicit registration, no auto-discovery."""

    def __init__(self, handlers: Iterable[ToolHandler] = ()):
        self._handlers: dict[str, ToolHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: ToolHandler) -> None:
        """Validate and register; a later handler with the same name replaces the earlier."""
        try:
            validated = ToolDefinition.model_validate(handler.definition)
        except ValidationError as e:
            raise ToolDefinitionError(f"Invalid tool definition: {e}")
        name = validated.function.name
        if name in self._handlers:
            logger.warning("Replacing tool handler '%s'", name)
        self._handlers[name] = ToolHandler(
            definition=validated.model_dump(), execute=handler.execute,
        )

    @property
    def has_tools(self) -> bool:
        return bool(self._handlers)

    def names(self) -> list[str]:
        return list(self._handlers)

    def definitions(self) -> list[dict]:
        return [h.definition for h in self._handlers.values()]

    async def execute(self, name: str, args: dict[str, Any]) -> ToolResult:
        """Route name to handler. Returns ToolResult; never raises."""
        handler = self._handlers.get(name)
        if not handler:
            logger.warning("Unknown tool requested: %s", name,
                extra={"tool_name": name})
            return ToolResult(content=f'Error: Unknown tool "{name}"')

        started = time.monotonic()
        try:
            result = await handler.execute(args)
        except Exception as e:
            logger.error("Tool '%s' execution error: %s", name, e,
                extra={"tool_name": name}, exc_info=True)
            return ToolResult(
                content=f'Error executing tool "{name}": {e}',
            )
        logger.info(
            "Tool '%s' completed", name,
            extra={
                "tool_name": name,
                "elapsed_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return result


def load_tool_providers(paths: Iterable[str]) -> ToolDispatch:
    """Build a dispatch from "package.module:factory" paths.

    Each factory is called with no arguments and returns an iterable of
    ToolHandler. Import or factory failures raise ToolDefinitionError so a
    misconfigured deployment fails at startup, not mid-conversation.
    """
    dispatch = ToolDispatch()
    for path in paths:
        module_name, _, attr = path.partition(":")
        if not module_name or not attr:
            raise ToolDefinitionError(
                f"Tool provider '{path}' must look like 'package.module:factory'",
            )
        try:
            factory = getattr(importlib.import_module(module_name), attr)
        except (ImportError, AttributeError) as e:
            raise ToolDefinitionError(
                f"Cannot load tool provider '{path}': {e}",
            )
        for handler in factory():
            dispatch.register(handler)
        logger.info("Loaded tool provider %s", path)
    logger.info("Tool catalog: %s", ", ".join(dispatch.names()) or "(empty)")
    return dispatch
