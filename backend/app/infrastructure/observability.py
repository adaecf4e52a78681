"""Structured Logging — JSON formatter and setup for agent-run observability.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Agent-run extras (session_id, iteration, attempt, tool_name, elapsed_ms,
      model, error_code) surfaced when present
    - JSON format in production, human-readable in development
    - setup_logging() is idempotent: repeated lifespans never stack handlers

Design Decisions:
    - Extras passed via `extra=` on stdlib logging calls: modules depend only on logging
    - setup_logging called once on startup via lifespan
"""

import logging
import json
from datetime import datetime, timezone

STRUCTURED_KEYS = (
    "session_id", "model", "iteration", "attempt", "tool_name",
    "elapsed_ms", "error_code", "path", "input_tokens", "output_tokens",
)

_HANDLER_NAME = "assistant-root"


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.fromtimestamp(
                record.created, timezone.utc,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in STRUCTURED_KEYS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the root handler (replacing ours if already installed)."""
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    for existing in list(logging.root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            logging.root.removeHandler(existing)
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
