"""Agent System Prompt — behavioral contract prepended to every tool-enabled run.

Invariants:
    - build_system_prompt() lists exactly the tools in the catalog it is given
    - Extra context (memory, @agent mentions) is appended verbatim at the end
    - Pure: same catalog + context → same prompt
"""

_BEHAVIOR = """You are a proactive personal assistant with access to the user's tools. \
Use tools immediately when the user mentions anything they could answer, without \
asking for permission or clarification.

## Behavior Rules
1. Never ask clarifying questions when you can infer what the user wants
2. When a request is ambiguous, make reasonable assumptions and proceed
3. Cite your sources with URLs when you use search results
4. Batch tool calls: when you need several independent lookups, request them \
all in a single response instead of one per turn
5. Finish the task: after gathering information, give the final answer the user asked for"""


def _tool_lines(tool_definitions: list[dict]) -> list[str]:
    lines = []
    for definition in tool_definitions:
        fn = definition.get("function", {})
        desc = (fn.get("description") or "").strip()
        lines.append(f"- {fn.get('name', '?')}: {desc}" if desc else f"- {fn.get('name', '?')}")
    return lines


def build_system_prompt(
    tool_definitions: list[dict], extra_context: str | None = None,
) -> str:
    """Build the system message content for a tool-enabled run."""
    sections = [_BEHAVIOR]
    tools = _tool_lines(tool_definitions)
    if tools:
        sections.append("## Tools Available\n" + "\n".join(tools))
    prompt = "\n\n".join(sections)
    if extra_context:
        prompt += extra_context
    return prompt
