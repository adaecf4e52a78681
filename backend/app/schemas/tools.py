"""Tool Schemas — validation for tool catalog entries sent to the model.

Invariants:
    - Every catalog entry is {"type": "function", "function": {name, description, parameters}}
    - name matches the provider's function-name rule (letters, digits, _ and -; max 64)
    - parameters is a JSON-schema-like object (dict); defaults to an empty object schema
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class FunctionSpec(BaseModel):
    name: str = Field(pattern=r"^[A-Za-z0-9_-]{1,64}$")
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
    )


class ToolDefinition(BaseModel):
    type: Literal["function"] = "function"
    function: FunctionSpec
