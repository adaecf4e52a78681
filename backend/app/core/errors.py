"""Error Hierarchy — typed, categorized exceptions for every assistant failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - to_response() produces the REST envelope; to_sse_event() produces the SSE envelope
    - No internal details leaked in user-facing messages
    - Inside the agent loop these are caught and turned into `error` events;
      they never cross the AgentRunner boundary

Design Decisions:
    - Single hierarchy with AssistantError base: FastAPI global handler catches all
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    TIMEOUT = "timeout"
    BUDGET = "budget"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: str | None = None
    tool_name: str | None = None
    model: str | None = None
    iteration: int | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class AssistantError(Exception):
    """Base exception for all assistant errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "session_id": self.context.session_id,
                    "tool_name": self.context.tool_name,
                    "iteration": self.context.iteration,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }

    def to_sse_event(self) -> dict:
        """Convert to SSE error event (same shape as agent_events.error_event)."""
        return {
            "type": "error",
            "data": {
                "message": self.context.user_message or self.message,
                "code": self.code,
            },
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class ToolDefinitionError(AssistantError):
    """Tool handler registered with a malformed definition."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_TOOL_DEFINITION", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class ResourceNotFoundError(AssistantError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


class ChatStateError(AssistantError):
    """Request conflicts with the stored conversation (e.g. nothing to regenerate)."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_CHAT_STATE", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 409,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(AssistantError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class OpenRouterAPIError(AssistantError):
    """Model provider call failed (connection, status, timeout, malformed stream)."""
    def __init__(
        self,
        message: str,
        api_error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = replace(context) if context else ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"OpenRouter API error ({api_error_type}): {message}",
            "OPENROUTER_API_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.api_error_type = api_error_type


class BudgetExceededError(AssistantError):
    """Agent loop hit its iteration cap or wall-clock limit."""
    def __init__(
        self, message: str, limit_type: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "BUDGET_EXCEEDED", ErrorCategory.BUDGET,
            ErrorSeverity.WARNING, context, 500,
        )
        self.limit_type = limit_type

    @classmethod
    def time_limit(
        cls, elapsed_ms: int, context: ErrorContext | None = None,
    ) -> "BudgetExceededError":
        mins = elapsed_ms // 60_000
        return cls(
            f"Execution time limit reached ({mins} minutes). Stopping.",
            "time", context,
        )

    @classmethod
    def iteration_limit(
        cls, max_iterations: int, context: ErrorContext | None = None,
    ) -> "BudgetExceededError":
        return cls(
            f"Iteration limit reached ({max_iterations} iterations). Stopping.",
            "iterations", context,
        )
