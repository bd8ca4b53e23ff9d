"""Base tool interface and argument validation."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

# JSON Schema primitive types and the Python types that satisfy them
_JSON_TYPES: dict[str, type | tuple[type, ...]] = {
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "object": dict,
    "array": list,
}


@dataclass
class ToolResult:
    """Result from tool execution.

    ``success`` reports whether the tool ran. A tool that ran and produced a
    negative answer (nothing matched, fact refused) is still a success; the
    answer is in ``output``.
    """

    success: bool
    output: str
    error: str | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def failure(cls, error: str) -> "ToolResult":
        return cls(success=False, output="", error=error)


def _type_matches(value: Any, expected: str) -> bool:
    python_type = _JSON_TYPES.get(expected)
    if python_type is None:
        return True
    # bool is an int subclass but never a valid JSON integer/number
    if isinstance(value, bool) and expected in ("integer", "number"):
        return False
    return isinstance(value, python_type)


def validate_arguments(schema: dict[str, Any], args: dict[str, Any]) -> str | None:
    """Check call arguments against an object schema.

    Covers the subset the memory tools rely on: required fields, closed
    objects (``additionalProperties: false``), primitive types and enums.

    Returns:
        An error message, or None if the arguments are valid.
    """
    properties: dict[str, Any] = schema.get("properties", {})

    for name in schema.get("required", []):
        if name not in args:
            return f"Missing required argument: {name}"

    if schema.get("additionalProperties") is False:
        unknown = sorted(set(args) - set(properties))
        if unknown:
            return f"Unexpected argument: {unknown[0]}"

    for name, value in args.items():
        spec = properties.get(name)
        if spec is None:
            continue
        expected = spec.get("type")
        if expected and not _type_matches(value, expected):
            article = "an" if expected[0] in "aeiou" else "a"
            return f"Argument '{name}' must be {article} {expected}"
        allowed = spec.get("enum")
        if allowed is not None and value not in allowed:
            return f"Argument '{name}' must be one of: {', '.join(map(str, allowed))}"

    return None


class Tool(ABC):
    """Base interface for all tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Tool description for LLM."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        ...

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool with validated arguments."""
        ...

    def get_schema(self) -> dict[str, Any]:
        """Get tool schema for LLM function calling."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def validate_args(self, args: dict[str, Any]) -> tuple[bool, str | None]:
        """Validate arguments against schema. Returns (valid, error_message)."""
        error = validate_arguments(self.parameters, args)
        return error is None, error
