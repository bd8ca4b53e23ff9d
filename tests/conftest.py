"""Shared fixtures."""

from pathlib import Path

import pytest

from souschef.conversation_logger import (
    get_conversation_logger,
    reset_conversation_logger,
)


@pytest.fixture(autouse=True)
def conversation_log_dir(tmp_path: Path):
    """Point the global conversation logger at a temporary directory."""
    reset_conversation_logger()
    log_dir = tmp_path / "logs"
    get_conversation_logger(log_dir)
    yield log_dir
    reset_conversation_logger()
