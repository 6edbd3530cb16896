"""Tool-call types exchanged with the agent loop.

Everything in these objects may travel to a model provider, so tools must
place only redacted text in ``ToolResult``.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class ToolCall:
    """A model's request to run a tool.

    ``arguments`` may contain secret placeholders.
    """

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class ToolResult:
    """Outcome of one tool call, already redacted."""

    success: bool
    output: str | None = None
    error: str | None = None
    error_code: str | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        output: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> "ToolResult":
        return cls(success=False, output=output, error=error, error_code=error_code, data=data)


@dataclass
class ToolDefinition:
    """Name, description and JSON-schema parameters of a tool."""

    name: str
    description: str
    parameters: dict[str, Any]

    def __post_init__(self) -> None:
        if not isinstance(self.parameters, dict):
            raise ValueError("Tool parameters must be a dictionary")
        if "type" not in self.parameters:
            raise ValueError("Tool parameters must specify 'type'")

    def to_function_schema(self) -> dict[str, Any]:
        """Function-calling schema understood by most chat APIs."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def format_tool_result(call_id: str, result: ToolResult) -> dict[str, Any]:
    """Build the conversation message answering ``call_id``.

    Failed calls without output carry their error text as content.
    """
    content = result.output or (result.error if not result.success else "")
    message: dict[str, Any] = {"role": "tool", "tool_call_id": call_id, "content": content}
    if result.data:
        message["meta"] = {"data": result.data}
    return message
