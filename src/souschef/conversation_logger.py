"""Conversation logger for turn-level analysis.

Writes one JSONL file per chat and day with every step of a turn: the user
message, guardrail decisions, model round-trips, tool calls and results, the
final reply, and background compaction runs.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

TOOL_OUTPUT_LIMIT = 2000


class ConversationLogger:
    """Appends turn events to per-chat JSONL files."""

    def __init__(self, log_dir: Path | str | None = None) -> None:
        """Initialize the conversation logger.

        Args:
            log_dir: Directory to store logs. Defaults to ./logs in cwd.
        """
        if log_dir is None:
            log_dir = Path.cwd() / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def _get_log_file(self, chat_id: str) -> Path:
        date_str = datetime.now().strftime("%Y-%m-%d")
        return self.log_dir / f"{date_str}_{chat_id}.jsonl"

    def _event(self, chat_id: str, event: str, **fields: Any) -> None:
        """Append one event line. None-valued optional fields are kept."""
        entry = {"event": event, **fields}
        entry["timestamp"] = datetime.now(timezone.utc).isoformat()
        entry["chat_id"] = chat_id

        with open(self._get_log_file(chat_id), "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")

    def log_user_message(self, chat_id: str, content: str) -> None:
        self._event(chat_id, "user_message", role="user", content=content)

    def log_assistant_message(self, chat_id: str, content: str) -> None:
        """Log the reply persisted for a turn."""
        self._event(chat_id, "assistant_message", role="assistant", content=content)

    def log_guardrail(self, chat_id: str, gate: str, passed: bool) -> None:
        """Log a guardrail decision (abuse, topic or output)."""
        self._event(chat_id, "guardrail", gate=gate, passed=passed)

    def log_tool_call(
        self,
        chat_id: str,
        tool_name: str,
        tool_args: dict[str, Any],
        tool_call_id: str | None = None,
    ) -> None:
        self._event(
            chat_id,
            "tool_call",
            tool_name=tool_name,
            tool_args=tool_args,
            tool_call_id=tool_call_id,
        )

    def log_tool_result(
        self,
        chat_id: str,
        tool_name: str,
        success: bool,
        output: str,
        error: str | None = None,
        tool_call_id: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log the result of a tool execution, output clipped."""
        extra: dict[str, Any] = {}
        if error:
            extra["error"] = error
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms
        self._event(
            chat_id,
            "tool_result",
            tool_name=tool_name,
            success=success,
            output=(output or "")[:TOOL_OUTPUT_LIMIT],
            tool_call_id=tool_call_id,
            **extra,
        )

    def log_llm_request(
        self,
        chat_id: str,
        model: str | None,
        messages_count: int,
        has_tools: bool,
    ) -> None:
        self._event(
            chat_id,
            "llm_request",
            model=model,
            messages_count=messages_count,
            has_tools=has_tools,
        )

    def log_llm_response(
        self,
        chat_id: str,
        has_content: bool,
        tool_calls_count: int,
        finish_reason: str | None = None,
    ) -> None:
        self._event(
            chat_id,
            "llm_response",
            has_content=has_content,
            tool_calls_count=tool_calls_count,
            finish_reason=finish_reason,
        )

    def log_error(self, chat_id: str, error: str, context: str | None = None) -> None:
        """Log a failure the user never sees verbatim."""
        if context:
            self._event(chat_id, "error", error=error, context=context)
        else:
            self._event(chat_id, "error", error=error)

    def log_agent_stop(
        self,
        chat_id: str,
        stop_reason: str,
        rounds: int,
        tool_calls_total: int,
    ) -> None:
        """Log why and after how many rounds the tool-calling loop stopped."""
        self._event(
            chat_id,
            "agent_stop",
            stop_reason=stop_reason,
            rounds=rounds,
            tool_calls_total=tool_calls_total,
        )

    def log_compaction(self, chat_id: str, new_memories: int, extracted: int) -> None:
        """Log a completed compaction run."""
        self._event(
            chat_id,
            "compaction",
            new_memories=new_memories,
            extracted=extracted,
        )


# Global instance
_conversation_logger: ConversationLogger | None = None


def get_conversation_logger(log_dir: Path | str | None = None) -> ConversationLogger:
    """Get or create the global conversation logger."""
    global _conversation_logger
    if _conversation_logger is None:
        _conversation_logger = ConversationLogger(log_dir=log_dir)
    return _conversation_logger


def reset_conversation_logger() -> None:
    """Reset the global conversation logger (for testing)."""
    global _conversation_logger
    _conversation_logger = None
