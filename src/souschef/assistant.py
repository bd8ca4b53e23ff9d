"""Assistant turn orchestration.

One user turn goes through: daily limit -> abuse check -> topic classifier ->
tool-calling loop -> output guardrail -> persisted reply -> background
compaction.
"""

import logging
from dataclasses import dataclass

from .agent import AgentConfig, AgentLoop, build_system_prompt
from .compaction import CompactionEngine
from .conversation_logger import ConversationLogger, get_conversation_logger
from .conversations import ConversationStore, IdentityProvider, Message
from .errors import (
    InvalidMessageError,
    NotFoundError,
    RateLimitError,
    UnauthenticatedError,
    UpstreamModelError,
)
from .guardrails import (
    OFF_TOPIC_REDIRECT,
    OUTPUT_REDIRECT,
    TopicClassifier,
    check_abuse,
    check_output,
)
from .llm_client import LLMClient
from .memory import MemoryManager, MemoryStore, build_memory_registry

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 10000
DAILY_REQUEST_LIMIT = 50


@dataclass(frozen=True)
class TurnResult:
    """What the chat surface needs to render a turn."""

    reply: str
    off_topic: bool
    tool_calls_used: int


class Assistant:
    """Entry point for chat turns and manual compaction."""

    def __init__(
        self,
        llm: LLMClient,
        conversations: ConversationStore,
        memory_store: MemoryStore,
        identity: IdentityProvider,
        compaction: CompactionEngine,
        classifier: TopicClassifier | None = None,
        config: AgentConfig | None = None,
        conversation_logger: ConversationLogger | None = None,
        daily_request_limit: int | None = DAILY_REQUEST_LIMIT,
    ) -> None:
        """Initialize the assistant.

        Args:
            llm: Client for the main chat completions.
            conversations: Conversation/message storage.
            memory_store: Storage for memory facts.
            identity: Resolves the current user.
            compaction: Engine that runs background compaction.
            classifier: Optional topic classifier; None disables it.
            config: Tool-calling loop configuration.
            conversation_logger: JSONL turn logger.
            daily_request_limit: Turns allowed per user per day; None
                disables the limit.
        """
        self.llm = llm
        self.conversations = conversations
        self.memory_store = memory_store
        self.identity = identity
        self.compaction = compaction
        self.classifier = classifier
        self.config = config or AgentConfig()
        self.conv_logger = conversation_logger or get_conversation_logger()
        if daily_request_limit is not None and daily_request_limit < 1:
            raise ValueError("daily_request_limit must be at least 1")
        self.daily_request_limit = daily_request_limit

    def _require_user(self) -> str:
        user_id = self.identity.current_user_id()
        if not user_id:
            raise UnauthenticatedError("Unauthorized")
        return user_id

    def _require_conversation(self, conversation_id: str, user_id: str) -> None:
        state = self.conversations.get_conversation_state(conversation_id)
        if state is None or state.user_id != user_id:
            raise NotFoundError("Conversation not found")

    async def handle_user_turn(
        self, conversation_id: str, user_message_id: str
    ) -> TurnResult:
        """Produce and persist the assistant reply to a stored user message.

        Args:
            conversation_id: The conversation the message belongs to.
            user_message_id: The stored user message to answer.

        Returns:
            TurnResult with the reply shown to the user.

        Raises:
            UnauthenticatedError: No current user.
            NotFoundError: Unknown conversation or message.
            InvalidMessageError: Empty or oversized message.
            RateLimitError: The user reached the daily request limit.
            UpstreamModelError: The main completion call failed (retryable).
        """
        user_id = self._require_user()
        self._require_conversation(conversation_id, user_id)

        message = self.conversations.get_message(user_message_id)
        if (
            message is None
            or message.conversation_id != conversation_id
            or message.role != "user"
        ):
            raise NotFoundError("Message not found")

        text = message.content.strip()
        if not text and not message.image_analysis:
            raise InvalidMessageError("Message cannot be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise InvalidMessageError(
                f"Message must be under {MAX_MESSAGE_LENGTH} characters"
            )

        if self.daily_request_limit is not None and not self.conversations.consume_request(
            user_id, self.daily_request_limit
        ):
            logger.info("Daily request limit reached for user %s", user_id)
            self.conv_logger.log_error(
                conversation_id, "Daily request limit reached", context="rate_limit"
            )
            raise RateLimitError("Daily request limit reached")

        self.conv_logger.log_user_message(conversation_id, message.content)

        # Layer 1: local abuse check, no model call
        if check_abuse(message.content):
            self.conv_logger.log_guardrail(conversation_id, "abuse", passed=False)
            return self._redirect(conversation_id, OFF_TOPIC_REDIRECT)

        # Layer 2: topic classifier; image messages are culinary by nature
        if self.classifier is not None and not message.image_analysis:
            verdict = await self.classifier.classify(message.content)
            self.conv_logger.log_guardrail(
                conversation_id, "topic", passed=verdict.is_culinary
            )
            if not verdict.is_culinary:
                return self._redirect(
                    conversation_id, verdict.redirect_message or OFF_TOPIC_REDIRECT
                )

        manager = MemoryManager(self.memory_store, user_id)
        system_prompt = build_system_prompt(manager.format_for_prompt(manager.list()))
        history = self._history(conversation_id, exclude_id=message.id)

        loop = AgentLoop(
            build_memory_registry(manager, conversation_id),
            self.llm,
            self.config,
            conversation_logger=self.conv_logger,
        )
        try:
            result = await loop.run_turn(
                system_prompt,
                history,
                message.for_llm()["content"],
                chat_id=conversation_id,
            )
        except UpstreamModelError as e:
            self.conv_logger.log_error(conversation_id, str(e), context="completion")
            raise

        reply = result.response
        off_topic = False
        # Layer 3: output guardrail
        if not check_output(reply):
            self.conv_logger.log_guardrail(conversation_id, "output", passed=False)
            logger.info("Output guardrail replaced reply in %s", conversation_id)
            reply = OUTPUT_REDIRECT
            off_topic = True

        self.conversations.persist_assistant_reply(conversation_id, reply)
        self.conv_logger.log_assistant_message(conversation_id, reply)

        self.compaction.schedule(conversation_id, user_id)

        return TurnResult(
            reply=reply,
            off_topic=off_topic,
            tool_calls_used=result.tool_calls_used,
        )

    async def run_compaction(self, conversation_id: str) -> int:
        """Compact a conversation now, regardless of the trigger.

        Returns:
            Number of new memories stored.
        """
        user_id = self._require_user()
        self._require_conversation(conversation_id, user_id)
        result = await self.compaction.run(conversation_id, user_id)
        return result.new_memories

    def _redirect(self, conversation_id: str, reply: str) -> TurnResult:
        self.conversations.persist_assistant_reply(conversation_id, reply)
        self.conv_logger.log_assistant_message(conversation_id, reply)
        return TurnResult(reply=reply, off_topic=True, tool_calls_used=0)

    def _history(self, conversation_id: str, exclude_id: str) -> list[dict[str, str]]:
        recent: list[Message] = self.conversations.get_recent_messages(
            conversation_id, self.config.history_limit + 1
        )
        recent = [m for m in recent if m.id != exclude_id][: self.config.history_limit]
        return [m.for_llm() for m in reversed(recent)]
