"""Bounded tool-calling loop for a single turn."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..conversation_logger import ConversationLogger, get_conversation_logger
from ..llm_client import Completion, LLMClient, ToolCall
from ..tools import MALFORMED_ARGUMENTS, ToolRegistry, ToolResult, parse_arguments
from .prompt import format_tool_result

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm sorry, I couldn't generate a response."


class StopReason(Enum):
    """Reasons for stopping the agent loop."""

    COMPLETE = "complete"
    MAX_ROUNDS = "max_rounds"
    TIMEOUT = "timeout"


@dataclass
class AgentConfig:
    """Configuration for the agent loop."""

    model: str | None = None
    max_rounds: int = 5
    round_timeout: float = 60.0
    history_limit: int = 20
    max_tokens: int | None = 2048

    def __post_init__(self) -> None:
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        if self.round_timeout <= 0:
            raise ValueError("round_timeout must be positive")


@dataclass
class AgentResult:
    """Result from running the agent loop."""

    response: str
    stop_reason: StopReason
    rounds: int
    tool_calls: list[dict[str, Any]] = field(default_factory=list)

    @property
    def tool_calls_used(self) -> int:
        return len(self.tool_calls)


class AgentLoop:
    """Main agent loop: think -> act -> observe, at most ``max_rounds`` times.

    Tool calls of one response are executed sequentially in the order the
    model emitted them, since a later call may depend on an earlier one
    (update after add). Each result is sent back tagged with its call's id.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        llm: LLMClient,
        config: AgentConfig | None = None,
        conversation_logger: ConversationLogger | None = None,
    ) -> None:
        self.registry = registry
        self.llm = llm
        self.config = config or AgentConfig()
        self.conv_logger = conversation_logger or get_conversation_logger()

    async def run_turn(
        self,
        system_prompt: str,
        history: list[dict[str, Any]],
        user_message: str,
        chat_id: str | None = None,
    ) -> AgentResult:
        """Run the loop for one user message.

        Args:
            system_prompt: The full system prompt.
            history: Prior messages, oldest first.
            user_message: The current user turn, including any image context.
            chat_id: Optional conversation id used for logging.

        Returns:
            AgentResult with the reply and the tool calls made.

        Raises:
            UpstreamModelError: A completion request failed.
        """
        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        messages.extend(history)
        messages.append({"role": "user", "content": user_message})

        tools_schema = self.registry.get_tools_schema()
        tool_calls_log: list[dict[str, Any]] = []
        last: Completion | None = None

        for round_index in range(self.config.max_rounds):
            if chat_id:
                self.conv_logger.log_llm_request(
                    chat_id,
                    model=self.config.model,
                    messages_count=len(messages),
                    has_tools=bool(tools_schema),
                )

            # Think: Call LLM
            try:
                last = await asyncio.wait_for(
                    self.llm.complete(
                        messages,
                        tools=tools_schema or None,
                        tool_choice="auto" if tools_schema else None,
                        max_tokens=self.config.max_tokens,
                    ),
                    timeout=self.config.round_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Completion round %d timed out after %.0fs",
                    round_index + 1,
                    self.config.round_timeout,
                )
                return self._stop(
                    chat_id,
                    last,
                    StopReason.TIMEOUT,
                    round_index + 1,
                    tool_calls_log,
                )

            if chat_id:
                self.conv_logger.log_llm_response(
                    chat_id,
                    has_content=bool(last.content),
                    tool_calls_count=len(last.tool_calls),
                    finish_reason=last.finish_reason,
                )

            if not last.tool_calls:
                # No tool calls - LLM is done
                return self._stop(
                    chat_id,
                    last,
                    StopReason.COMPLETE,
                    round_index + 1,
                    tool_calls_log,
                )

            messages.append(last.to_message())

            for tool_call in last.tool_calls:
                result, tool_args = await self._execute(tool_call, chat_id)
                tool_calls_log.append({
                    "id": tool_call.id,
                    "name": tool_call.name,
                    "args": tool_args,
                    "success": result.success,
                })

                # Observe: Add result to conversation
                messages.append({
                    "role": "tool",
                    "tool_call_id": tool_call.id,
                    "content": format_tool_result(result),
                })

        return self._stop(
            chat_id,
            last,
            StopReason.MAX_ROUNDS,
            self.config.max_rounds,
            tool_calls_log,
        )

    async def _execute(
        self, tool_call: ToolCall, chat_id: str | None
    ) -> tuple[ToolResult, dict[str, Any]]:
        """Parse arguments and dispatch one tool call. Never raises."""
        tool_args = parse_arguments(tool_call.arguments)
        if tool_args is None:
            logger.info("Malformed arguments for %s: %r", tool_call.name, tool_call.arguments)
            return ToolResult.failure(MALFORMED_ARGUMENTS), {}

        if chat_id:
            self.conv_logger.log_tool_call(
                chat_id,
                tool_name=tool_call.name,
                tool_args=tool_args,
                tool_call_id=tool_call.id,
            )

        # Act: Execute tool
        start_time = time.time()
        result = await self.registry.dispatch(tool_call.name, tool_args)
        duration_ms = (time.time() - start_time) * 1000

        if chat_id:
            self.conv_logger.log_tool_result(
                chat_id,
                tool_name=tool_call.name,
                success=result.success,
                output=result.output,
                error=result.error,
                tool_call_id=tool_call.id,
                duration_ms=duration_ms,
            )

        return result, tool_args

    def _stop(
        self,
        chat_id: str | None,
        last: Completion | None,
        reason: StopReason,
        rounds: int,
        tool_calls_log: list[dict[str, Any]],
    ) -> AgentResult:
        response = (last.content if last else None) or FALLBACK_REPLY

        if chat_id:
            self.conv_logger.log_agent_stop(
                chat_id,
                stop_reason=reason.value,
                rounds=rounds,
                tool_calls_total=len(tool_calls_log),
            )

        return AgentResult(
            response=response,
            stop_reason=reason,
            rounds=rounds,
            tool_calls=tool_calls_log,
        )
