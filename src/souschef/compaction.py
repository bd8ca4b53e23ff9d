"""Background compaction of chat history into durable memory facts.

Compaction is safe to request after every turn: the trigger is a pure
function of one conversation snapshot, and a conversation never has more
than one job in flight.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

from .conversation_logger import ConversationLogger, get_conversation_logger
from .conversations import ConversationState, ConversationStore
from .memory import MemoryExtractor, MemoryManager, MemoryStore

logger = logging.getLogger(__name__)


@dataclass
class CompactionConfig:
    """Thresholds for automatic compaction."""

    message_threshold: int = 10
    time_window_seconds: float = 24 * 60 * 60
    history_batch: int = 30

    def __post_init__(self) -> None:
        if self.message_threshold < 1:
            raise ValueError("message_threshold must be at least 1")
        if self.history_batch < 1:
            raise ValueError("history_batch must be at least 1")


@dataclass(frozen=True)
class CompactionResult:
    """Outcome of a compaction request."""

    ran: bool
    new_memories: int = 0


def should_compact(
    state: ConversationState,
    now: float,
    message_threshold: int = 10,
    time_window_seconds: float = 24 * 60 * 60,
) -> bool:
    """Decide whether a conversation is due for compaction."""
    if state.message_count >= message_threshold:
        return True
    return now - state.compaction_anchor > time_window_seconds


class CompactionEngine:
    """Extracts memories from recent history and stores the new ones."""

    def __init__(
        self,
        conversations: ConversationStore,
        memory_store: MemoryStore,
        extractor: MemoryExtractor,
        config: CompactionConfig | None = None,
        conversation_logger: ConversationLogger | None = None,
    ) -> None:
        self.conversations = conversations
        self.memory_store = memory_store
        self.extractor = extractor
        self.config = config or CompactionConfig()
        self.conv_logger = conversation_logger or get_conversation_logger()
        self._tasks: dict[str, asyncio.Task] = {}

    def is_due(self, state: ConversationState, now: float | None = None) -> bool:
        return should_compact(
            state,
            time.time() if now is None else now,
            self.config.message_threshold,
            self.config.time_window_seconds,
        )

    async def maybe_compact(self, conversation_id: str, user_id: str) -> CompactionResult:
        """Run compaction if the conversation is due.

        Returns:
            CompactionResult with ``ran=False`` if not due or unknown.
        """
        state = self.conversations.get_conversation_state(conversation_id)
        if state is None or state.user_id != user_id:
            return CompactionResult(ran=False)
        if not self.is_due(state):
            return CompactionResult(ran=False)
        return await self.run(conversation_id, user_id)

    async def run(self, conversation_id: str, user_id: str) -> CompactionResult:
        """Compact a conversation unconditionally.

        Raises:
            UpstreamModelError: The extraction request failed. The
                conversation is not marked, so the next trigger retries.
        """
        recent = self.conversations.get_recent_messages(
            conversation_id, self.config.history_batch
        )
        history = [m.for_llm() for m in reversed(recent)]

        manager = MemoryManager(self.memory_store, user_id)
        extracted = await self.extractor.extract(history, manager.existing_facts())

        created = 0
        for memory in extracted:
            result = manager.add(
                memory.fact,
                memory.category,
                source_conversation_id=conversation_id,
            )
            if result.created:
                created += 1

        self.conversations.mark_compacted(conversation_id, time.time())
        self.conv_logger.log_compaction(
            conversation_id, new_memories=created, extracted=len(extracted)
        )
        logger.info(
            "Compacted conversation %s: %d extracted, %d new",
            conversation_id,
            len(extracted),
            created,
        )
        return CompactionResult(ran=True, new_memories=created)

    def schedule(self, conversation_id: str, user_id: str) -> asyncio.Task | None:
        """Submit a background compaction check for a conversation.

        The job has its own error boundary: failures are logged and never
        reach the caller. Returns None if a job for this conversation is
        already running.
        """
        running = self._tasks.get(conversation_id)
        if running is not None and not running.done():
            logger.debug("Compaction already running for %s", conversation_id)
            return None

        task = asyncio.create_task(self._guarded(conversation_id, user_id))
        self._tasks[conversation_id] = task
        task.add_done_callback(lambda t: self._forget(conversation_id, t))
        return task

    async def drain(self) -> None:
        """Wait for every scheduled job to finish."""
        pending = [t for t in self._tasks.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _guarded(self, conversation_id: str, user_id: str) -> CompactionResult:
        try:
            return await self.maybe_compact(conversation_id, user_id)
        except Exception as e:
            logger.exception("Memory compaction failed for %s", conversation_id)
            self.conv_logger.log_error(conversation_id, str(e), context="compaction")
            return CompactionResult(ran=False)

    def _forget(self, conversation_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(conversation_id) is task:
            del self._tasks[conversation_id]
