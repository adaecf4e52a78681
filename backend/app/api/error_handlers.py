"""Error Handlers — global exception handlers for the assistant API.

Invariants:
    - AssistantError → structured JSON with error code, message, severity
    - RequestValidationError → field-level error details (400)
    - Exception (catch-all) → never leaks internal details
    - Errors raised inside an SSE stream never reach these handlers: the
      AgentRunner turns them into `error` events

Design Decisions:
    - Three layers: domain (AssistantError), validation (pydantic), catch-all
    - Kept out of main.py so the app module only wires things together
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from app.core.errors import AssistantError, ErrorCategory, ErrorSeverity

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    app.add_exception_handler(AssistantError, _assistant_error_handler)
    app.add_exception_handler(
        RequestValidationError, _validation_error_handler,
    )
    app.add_exception_handler(Exception, _generic_error_handler)


async def _assistant_error_handler(request: Request, exc: AssistantError):
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        "%s: %s", type(exc).__name__, exc.message,
        extra={"error_code": exc.code, "path": request.url.path},
    )
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_response(),
    )


async def _validation_error_handler(
    request: Request, exc: RequestValidationError,
):
    logger.warning(
        "Validation error on %s: %s", request.url.path, exc.errors(),
        extra={"error_code": "VALIDATION_ERROR", "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_validation_error_body(exc),
    )


async def _generic_error_handler(request: Request, exc: Exception):
    """Catch-all — never leaks internal details."""
    logger.error(
        "Unhandled exception on %s: %s", request.url.path, exc,
        extra={"error_code": "INTERNAL_ERROR", "path": request.url.path},
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "category": ErrorCategory.INTERNAL.value,
                "severity": ErrorSeverity.CRITICAL.value,
            },
        },
    )


def _validation_error_body(exc: RequestValidationError) -> dict:
    return {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Invalid request data",
            "category": ErrorCategory.VALIDATION.value,
            "severity": ErrorSeverity.ERROR.value,
            "details": [
                {
                    "field": ".".join(str(loc) for loc in e["loc"]),
                    "message": e["msg"],
                    "type": e["type"],
                }
                for e in exc.errors()
            ],
        },
    }
