"""Tests for the JSONL conversation logger."""

import json
from pathlib import Path

from souschef.conversation_logger import (
    ConversationLogger,
    get_conversation_logger,
    reset_conversation_logger,
)


def read_entries(log_dir: Path, chat_id: str) -> list[dict]:
    [log_file] = list(log_dir.glob(f"*_{chat_id}.jsonl"))
    return [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]


class TestConversationLogger:
    """Tests for ConversationLogger."""

    def test_creates_directory(self, tmp_path: Path):
        log_dir = tmp_path / "a" / "b"
        ConversationLogger(log_dir)
        assert log_dir.is_dir()

    def test_entries_are_stamped(self, tmp_path: Path):
        conv_logger = ConversationLogger(tmp_path)
        conv_logger.log_user_message("conv-1", "¿Qué cocino hoy?")

        [entry] = read_entries(tmp_path, "conv-1")
        assert entry["event"] == "user_message"
        assert entry["content"] == "¿Qué cocino hoy?"
        assert entry["chat_id"] == "conv-1"
        assert "timestamp" in entry

    def test_turn_events(self, tmp_path: Path):
        conv_logger = ConversationLogger(tmp_path)
        conv_logger.log_guardrail("conv-1", "topic", passed=False)
        conv_logger.log_tool_result(
            "conv-1", "add_user_memory", success=False, output="x" * 3000, error="boom"
        )
        conv_logger.log_agent_stop("conv-1", "max_rounds", rounds=5, tool_calls_total=5)
        conv_logger.log_compaction("conv-1", new_memories=1, extracted=2)

        guardrail, tool_result, stop, compaction = read_entries(tmp_path, "conv-1")
        assert guardrail["gate"] == "topic"
        assert guardrail["passed"] is False
        assert len(tool_result["output"]) == 2000
        assert tool_result["error"] == "boom"
        assert stop["stop_reason"] == "max_rounds"
        assert compaction == {
            **compaction,
            "event": "compaction",
            "new_memories": 1,
            "extracted": 2,
        }

    def test_chats_in_separate_files(self, tmp_path: Path):
        conv_logger = ConversationLogger(tmp_path)
        conv_logger.log_error("conv-1", "oops", context="tool")
        conv_logger.log_error("conv-2", "oops")

        assert read_entries(tmp_path, "conv-1")[0]["context"] == "tool"
        assert "context" not in read_entries(tmp_path, "conv-2")[0]


class TestGlobalLogger:
    """Tests for the shared logger instance."""

    def test_singleton(self, tmp_path: Path):
        reset_conversation_logger()
        first = get_conversation_logger(tmp_path / "global")
        assert get_conversation_logger() is first
        assert first.log_dir == tmp_path / "global"

    def test_reset(self, tmp_path: Path):
        reset_conversation_logger()
        first = get_conversation_logger(tmp_path / "one")
        reset_conversation_logger()
        assert get_conversation_logger(tmp_path / "two") is not first
