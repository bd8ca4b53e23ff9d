"""Configuration loader.

Settings come from ~/.souschef/config.json, then environment variables
override individual values. A missing or broken config file falls back to
defaults.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .agent.loop import AgentConfig
from .compaction import CompactionConfig
from .llm_client import DEFAULT_MODEL

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".souschef"
DEFAULT_CONFIG_PATH = DEFAULT_DATA_DIR / "config.json"
FAST_MODEL = "llama-3.1-8b-instant"


@dataclass
class GuardrailConfig:
    """Configuration for the topic classifier."""

    topic_classifier_enabled: bool = True
    classifier_model: str = FAST_MODEL


@dataclass
class Settings:
    """All runtime settings.

    Attributes:
        agent: Tool-calling loop settings.
        guardrails: Topic classifier settings.
        compaction: Compaction thresholds.
        extraction_model: Model used for memory extraction.
        data_dir: Directory holding the SQLite databases.
        log_dir: Directory for conversation logs.
        daily_request_limit: Chat turns allowed per user per day.
    """

    agent: AgentConfig = field(default_factory=lambda: AgentConfig(model=DEFAULT_MODEL))
    guardrails: GuardrailConfig = field(default_factory=GuardrailConfig)
    compaction: CompactionConfig = field(default_factory=CompactionConfig)
    extraction_model: str = FAST_MODEL
    data_dir: Path = DEFAULT_DATA_DIR
    log_dir: Path | None = None
    daily_request_limit: int = 50

    def __post_init__(self) -> None:
        if self.agent.model is None:
            self.agent.model = DEFAULT_MODEL
        if self.log_dir is None:
            self.log_dir = self.data_dir / "logs"

    @property
    def memory_db_path(self) -> Path:
        return self.data_dir / "memory.db"

    @property
    def conversations_db_path(self) -> Path:
        return self.data_dir / "conversations.db"


def load_config(config_path: Path | None = None) -> Settings:
    """Load Settings from a JSON file.

    The config file should have this structure:
    ```json
    {
      "agent": {"model": "llama-3.3-70b-versatile", "max_rounds": 5},
      "guardrails": {"topic_classifier": true},
      "compaction": {"message_threshold": 10, "time_window_hours": 24},
      "data_dir": "~/.souschef",
      "daily_request_limit": 50
    }
    ```

    Args:
        config_path: Path to config file. Uses DEFAULT_CONFIG_PATH if None.

    Returns:
        Settings instance with loaded values.
    """
    path = config_path or DEFAULT_CONFIG_PATH

    if not path.exists():
        logger.debug("No config file at %s, using defaults", path)
        return Settings()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in %s: %s. Using defaults.", path, e)
        return Settings()
    except OSError as e:
        logger.warning("Cannot read %s: %s. Using defaults.", path, e)
        return Settings()

    if not isinstance(data, dict):
        logger.warning("Config in %s is not an object. Using defaults.", path)
        return Settings()

    return _parse_config(data)


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    return value if isinstance(value, dict) else {}


def _positive_int(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        return default
    return value


def _positive_float(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return default
    return float(value)


def _parse_config(data: dict[str, Any]) -> Settings:
    """Parse config dictionary into Settings, ignoring invalid values."""
    agent_data = _section(data, "agent")
    guard_data = _section(data, "guardrails")
    compaction_data = _section(data, "compaction")

    agent = AgentConfig(
        model=agent_data.get("model") or DEFAULT_MODEL,
        max_rounds=_positive_int(agent_data.get("max_rounds"), 5),
        round_timeout=_positive_float(agent_data.get("round_timeout"), 60.0),
        history_limit=_positive_int(agent_data.get("history_limit"), 20),
    )

    classifier_enabled = guard_data.get("topic_classifier", True)
    guardrails = GuardrailConfig(
        topic_classifier_enabled=classifier_enabled
        if isinstance(classifier_enabled, bool)
        else True,
        classifier_model=guard_data.get("classifier_model") or FAST_MODEL,
    )

    compaction = CompactionConfig(
        message_threshold=_positive_int(compaction_data.get("message_threshold"), 10),
        time_window_seconds=_positive_float(compaction_data.get("time_window_hours"), 24)
        * 3600,
        history_batch=_positive_int(compaction_data.get("history_batch"), 30),
    )

    data_dir = DEFAULT_DATA_DIR
    if isinstance(data.get("data_dir"), str):
        data_dir = Path(data["data_dir"]).expanduser()

    return Settings(
        agent=agent,
        guardrails=guardrails,
        compaction=compaction,
        extraction_model=compaction_data.get("model") or FAST_MODEL,
        data_dir=data_dir,
        daily_request_limit=_positive_int(data.get("daily_request_limit"), 50),
    )


def apply_env(settings: Settings, env: Mapping[str, str] | None = None) -> Settings:
    """Apply environment variable overrides in place.

    Recognized variables: GROQ_MODEL, SOUSCHEF_MAX_ROUNDS,
    SOUSCHEF_ROUND_TIMEOUT, SOUSCHEF_TOPIC_CLASSIFIER, SOUSCHEF_DATA_DIR,
    SOUSCHEF_LOG_DIR, SOUSCHEF_DAILY_LIMIT.
    """
    env = os.environ if env is None else env

    if env.get("GROQ_MODEL"):
        settings.agent.model = env["GROQ_MODEL"]
    if env.get("SOUSCHEF_MAX_ROUNDS"):
        settings.agent.max_rounds = _positive_int(
            _to_int(env["SOUSCHEF_MAX_ROUNDS"]), settings.agent.max_rounds
        )
    if env.get("SOUSCHEF_ROUND_TIMEOUT"):
        settings.agent.round_timeout = _positive_float(
            _to_float(env["SOUSCHEF_ROUND_TIMEOUT"]), settings.agent.round_timeout
        )
    if env.get("SOUSCHEF_TOPIC_CLASSIFIER"):
        settings.guardrails.topic_classifier_enabled = env[
            "SOUSCHEF_TOPIC_CLASSIFIER"
        ].strip().lower() not in ("0", "false", "no", "off")
    if env.get("SOUSCHEF_DATA_DIR"):
        data_dir = Path(env["SOUSCHEF_DATA_DIR"]).expanduser()
        if settings.log_dir == settings.data_dir / "logs":
            settings.log_dir = data_dir / "logs"
        settings.data_dir = data_dir
    if env.get("SOUSCHEF_LOG_DIR"):
        settings.log_dir = Path(env["SOUSCHEF_LOG_DIR"]).expanduser()
    if env.get("SOUSCHEF_DAILY_LIMIT"):
        settings.daily_request_limit = _positive_int(
            _to_int(env["SOUSCHEF_DAILY_LIMIT"]), settings.daily_request_limit
        )

    return settings


def _to_int(value: str) -> int | None:
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer value %r", value)
        return None


def _to_float(value: str) -> float | None:
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric value %r", value)
        return None
