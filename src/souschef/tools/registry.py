"""Tool registry: schemas for the model, dispatch for its calls."""

import json
import logging
from typing import Any, Iterable

from .base import Tool, ToolResult

logger = logging.getLogger(__name__)

MALFORMED_ARGUMENTS = "Malformed tool arguments: expected a JSON object"


def parse_arguments(raw: str | None) -> dict[str, Any] | None:
    """Decode the JSON arguments string of a tool call.

    An empty string means no arguments. Returns None unless the payload is
    a JSON object.
    """
    try:
        args = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return None
    return args if isinstance(args, dict) else None


class ToolRegistry:
    """The set of tools offered to the model for one turn."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, tool: Tool) -> None:
        """Register a tool. Names must be unique."""
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """Registered tool names in registration order."""
        return list(self._tools)

    def get_tools_schema(self) -> list[dict[str, Any]]:
        """Function-calling schemas, in registration order."""
        return [tool.get_schema() for tool in self._tools.values()]

    async def dispatch(self, tool_name: str, args: dict[str, Any]) -> ToolResult:
        """Validate and run one tool call.

        Never raises: unknown tools, invalid arguments and exceptions raised
        by the tool all come back as failed results.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            return ToolResult.failure(f"Unknown tool: {tool_name}")

        valid, error = tool.validate_args(args)
        if not valid:
            logger.info("Rejected %s call: %s", tool_name, error)
            return ToolResult.failure(error or "Invalid arguments")

        try:
            return await tool.execute(**args)
        except Exception as e:
            logger.warning("Tool %s failed: %s", tool_name, e)
            return ToolResult.failure(f"Tool execution failed: {e}")
