"""CLI interface for SousChef."""

import asyncio
import getpass
import logging
import os

from groq import AsyncGroq

from .assistant import Assistant
from .compaction import CompactionEngine
from .config import Settings, apply_env, load_config
from .conversation_logger import get_conversation_logger
from .conversations import SQLiteConversationStore, StaticIdentity
from .errors import RateLimitError, SousChefError
from .guardrails import TopicClassifier
from .llm_client import GroqLLMClient
from .memory import MemoryExtractor, MemoryManager, MemoryStore

logger = logging.getLogger(__name__)


BANNER = """
╔══════════════════════════════════════════╗
║           🍳 SousChef v0.1.0             ║
║     Your cooking assistant with memory   ║
╚══════════════════════════════════════════╝

Commands:
  /memories        - Show what I remember about you
  /forget <term>   - Forget a remembered fact
  /compact         - Extract memories from this conversation now
  /new             - Start a new conversation
  /exit, /quit     - Exit the CLI
  /help            - Show this help

Type your message and press Enter.
"""

RETRY_MESSAGE = "The kitchen is a bit busy right now. Please try again in a moment."
LIMIT_MESSAGE = "You've reached today's request limit. Let's pick this up again tomorrow!"


class CLI:
    """Interactive command-line interface for SousChef."""

    def __init__(self, settings: Settings, user_id: str, groq_client: AsyncGroq) -> None:
        self.settings = settings
        self.user_id = user_id

        self.memory_store = MemoryStore(settings.memory_db_path)
        self.memory_store.init_db()
        self.conversations = SQLiteConversationStore(settings.conversations_db_path)
        self.conversations.init_db()
        conv_logger = get_conversation_logger(settings.log_dir)

        extractor = MemoryExtractor(
            GroqLLMClient(groq_client, model=settings.extraction_model)
        )
        self.compaction = CompactionEngine(
            self.conversations,
            self.memory_store,
            extractor,
            settings.compaction,
            conversation_logger=conv_logger,
        )

        classifier = None
        if settings.guardrails.topic_classifier_enabled:
            classifier = TopicClassifier(
                GroqLLMClient(groq_client, model=settings.guardrails.classifier_model)
            )

        self.assistant = Assistant(
            llm=GroqLLMClient(groq_client, model=settings.agent.model),
            conversations=self.conversations,
            memory_store=self.memory_store,
            identity=StaticIdentity(user_id),
            compaction=self.compaction,
            classifier=classifier,
            config=settings.agent,
            conversation_logger=conv_logger,
            daily_request_limit=settings.daily_request_limit,
        )
        self.memory = MemoryManager(self.memory_store, user_id)
        self.conversation_id = self._new_conversation()

    def _new_conversation(self) -> str:
        return self.conversations.create_conversation(self.user_id).conversation_id

    def _show_memories(self) -> None:
        facts = self.memory.list()
        if not facts:
            print("\nI don't remember anything about you yet.")
            return
        print()
        for fact in facts:
            print(f"  [{fact.category.value}] {fact.fact}")

    def _forget(self, term: str) -> None:
        if not term:
            print("\nUsage: /forget <term>")
            return
        result = self.memory.remove_by_search(term)
        if result.removed and result.fact is not None:
            print(f"\n✓ Forgot: {result.fact.fact}")
        else:
            print(f'\nNothing remembered matching "{term}"')

    async def _process_message(self, text: str) -> None:
        """Store the user message and run a turn for it."""
        message = self.conversations.add_user_message(self.conversation_id, text)
        try:
            result = await self.assistant.handle_user_turn(
                self.conversation_id, message.id
            )
        except RateLimitError:
            print(f"\n⚠ {LIMIT_MESSAGE}")
            return
        except SousChefError as e:
            logger.warning("Turn failed (%s): %s", e.code, e)
            print(f"\n⚠ {RETRY_MESSAGE if e.retryable else 'Sorry, I could not handle that message.'}")
            return

        print("\n" + "─" * 40)
        print(result.reply)
        print("─" * 40)
        if result.tool_calls_used:
            print(f"(memory tools used: {result.tool_calls_used})")

    async def _handle_command(self, command: str) -> bool:
        """Handle a special command. Returns True if should continue, False to exit."""
        cmd, _, arg = command.strip().partition(" ")
        cmd = cmd.lower()

        if cmd in ("/exit", "/quit", "exit", "quit"):
            print("\n👋 Goodbye!")
            return False

        if cmd == "/memories":
            self._show_memories()
        elif cmd == "/forget":
            self._forget(arg.strip())
        elif cmd == "/compact":
            try:
                count = await self.assistant.run_compaction(self.conversation_id)
            except SousChefError as e:
                logger.warning("Manual compaction failed: %s", e)
                print(f"\n⚠ {RETRY_MESSAGE}")
            else:
                print(f"\n📝 Saved {count} new memor{'y' if count == 1 else 'ies'}")
        elif cmd == "/new":
            self.conversation_id = self._new_conversation()
            print(f"\n✓ New conversation: {self.conversation_id}")
        elif cmd == "/help":
            print(BANNER)

        return True

    async def run(self) -> None:
        """Run the interactive CLI."""
        print(BANNER)
        print(f"Conversation: {self.conversation_id}\n")

        try:
            while True:
                try:
                    user_input = (await asyncio.to_thread(input, "you> ")).strip()
                except (EOFError, KeyboardInterrupt):
                    print("\n👋 Goodbye!")
                    break

                if not user_input:
                    continue

                if user_input.startswith("/") or user_input.lower() in ("exit", "quit"):
                    if not await self._handle_command(user_input):
                        break
                    continue

                await self._process_message(user_input)
        finally:
            await self.compaction.drain()
            self.conversations.close()
            self.memory_store.close()


async def run_cli() -> None:
    """Run the CLI with configuration from file and environment."""
    logging.basicConfig(
        level=os.getenv("SOUSCHEF_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not os.getenv("GROQ_API_KEY"):
        print("❌ Error: GROQ_API_KEY environment variable not set")
        print("Please set it in your .env file or environment")
        return

    settings = apply_env(load_config())
    user_id = os.getenv("SOUSCHEF_USER") or getpass.getuser()
    cli = CLI(settings, user_id, AsyncGroq(api_key=os.getenv("GROQ_API_KEY")))
    await cli.run()
