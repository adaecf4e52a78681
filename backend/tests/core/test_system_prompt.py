"""System prompt tests — tool catalog rendering and extra context.

Tests cover:
    - Every catalog tool listed once, with its description
    - No tools section for an empty catalog
    - Extra context appended verbatim at the end
"""

from app.services.system_prompt import build_system_prompt
from app.services.tool_dispatch import function_definition


CATALOG = [
    function_definition("web_search", "Search the web", {"type": "object"}),
    function_definition("calendar_list", "", {"type": "object"}),
]


def test_lists_each_tool():
    prompt = build_system_prompt(CATALOG)
    assert "## Tools Available" in prompt
    assert "- web_search: Search the web" in prompt
    assert "- calendar_list\n" in prompt + "\n"


def test_empty_catalog_has_no_tools_section():
    assert "## Tools Available" not in build_system_prompt([])


def test_extra_context_appended_at_end():
    extra = "\n\n## Memory\nUser lives in Porto."
    prompt = build_system_prompt(CATALOG, extra)
    assert prompt.endswith(extra)


def test_deterministic():
    assert build_system_prompt(CATALOG, "x") == build_system_prompt(CATALOG, "x")


def test_behavior_rules_present():
    prompt = build_system_prompt([])
    assert "Batch tool calls" in prompt
