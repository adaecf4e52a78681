"""Title Generator tests.

Tests cover:
    - normalize_title trimming, default and truncation
    - should_generate_title cadence
    - generate_session_title sends a bounded prompt to the title model
"""

import pytest

from app.core.messages import AssistantMessage, UserMessage
from app.services.title_generator import (
    DEFAULT_TITLE, generate_session_title, normalize_title, should_generate_title,
)

from tests.services.mock_openrouter import MockOpenRouterClient


def test_normalize_title_trims():
    assert normalize_title("  Trip to Lisbon \n") == "Trip to Lisbon"


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_normalize_title_blank_falls_back(raw):
    assert normalize_title(raw) == DEFAULT_TITLE


def test_normalize_title_truncates_long_titles():
    title = normalize_title("x" * 80)
    assert len(title) == 60
    assert title.endswith("...")


def test_normalize_title_keeps_exactly_sixty():
    assert normalize_title("y" * 60) == "y" * 60


@pytest.mark.parametrize("count,expected", [
    (1, False), (2, True), (3, False), (10, True), (15, False), (20, True),
])
def test_should_generate_title(count, expected):
    assert should_generate_title(count) is expected


async def test_generate_session_title_uses_first_six_messages():
    client = MockOpenRouterClient([], titles=["  Weekend Plans  "])
    history = [
        UserMessage(f"q{i}") if i % 2 == 0 else AssistantMessage(f"a{i}")
        for i in range(10)
    ]

    title = await generate_session_title(client, history, "test/title-model")

    assert title == "Weekend Plans"
    call = client.completion_calls[0]
    assert call["model"] == "test/title-model"
    wire = call["messages"]
    assert wire[0]["role"] == "system"
    assert [m["content"] for m in wire[1:-1]] == [
        "q0", "a1", "q2", "a3", "q4", "a5",
    ]
    assert wire[-1]["role"] == "user"
