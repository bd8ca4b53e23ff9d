"""Tool-calling loop and prompt building."""

from .loop import FALLBACK_REPLY, AgentConfig, AgentLoop, AgentResult, StopReason
from .prompt import build_system_prompt

__all__ = [
    "FALLBACK_REPLY",
    "AgentConfig",
    "AgentLoop",
    "AgentResult",
    "StopReason",
    "build_system_prompt",
]
