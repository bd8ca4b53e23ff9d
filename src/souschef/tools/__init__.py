"""Tool interface and registry."""

from .base import Tool, ToolResult, validate_arguments
from .registry import MALFORMED_ARGUMENTS, ToolRegistry, parse_arguments

__all__ = [
    "MALFORMED_ARGUMENTS",
    "Tool",
    "ToolResult",
    "ToolRegistry",
    "parse_arguments",
    "validate_arguments",
]
