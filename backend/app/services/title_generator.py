"""Session Title Generator — short conversation title from a cheap model.

Invariants:
    - Uses at most the first TITLE_CONTEXT_MESSAGES messages of the conversation
    - Never returns blank: empty model output becomes DEFAULT_TITLE
    - Titles longer than MAX_TITLE_LENGTH are cut to 57 chars + "..."
"""

import logging

from app.core.errors import ErrorContext
from app.core.messages import Message, SystemMessage, UserMessage, to_wire_messages

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"
MAX_TITLE_LENGTH = 60
TITLE_CONTEXT_MESSAGES = 6

_TITLE_SYSTEM_PROMPT = (
    "Generate a very short title (3-6 words max) for this conversation. "
    "Respond with ONLY the title, no quotes, no punctuation at the end, "
    "no explanation."
)
_TITLE_REQUEST = "Generate a short title for the conversation above."


def normalize_title(raw: str | None) -> str:
    title = (raw or "").strip() or DEFAULT_TITLE
    if len(title) > MAX_TITLE_LENGTH:
        return title[:MAX_TITLE_LENGTH - 3] + "..."
    return title


def should_generate_title(message_count: int) -> bool:
    """First exchange (2 messages), then every tenth message."""
    return message_count == 2 or (message_count > 2 and message_count % 10 == 0)


async def generate_session_title(
    client,
    messages: list[Message],
    model: str,
    context: ErrorContext | None = None,
) -> str:
    """One non-streaming completion; raises OpenRouterAPIError on provider failure."""
    prompt = [
        SystemMessage(_TITLE_SYSTEM_PROMPT),
        *messages[:TITLE_CONTEXT_MESSAGES],
        UserMessage(_TITLE_REQUEST),
    ]
    raw = await client.create_completion(
        model=model, messages=to_wire_messages(prompt), context=context,
    )
    title = normalize_title(raw)
    logger.info("Generated session title: %s", title,
        extra={"session_id": context.session_id if context else None})
    return title
