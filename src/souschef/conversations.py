"""Conversation and message storage consumed by the assistant.

The assistant only depends on the ``ConversationStore`` and
``IdentityProvider`` protocols. ``SQLiteConversationStore`` is the reference
implementation used by the CLI and the tests.
"""

import sqlite3
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

DAY_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class Message:
    """A stored chat message."""

    id: str
    conversation_id: str
    role: str
    content: str
    created_at: float
    image_analysis: str | None = None
    recipe_json: str | None = None

    def for_llm(self) -> dict[str, str]:
        """Return the message in chat-completions format."""
        content = self.content
        if self.image_analysis:
            content += f"\n[Image: {self.image_analysis}]"
        return {"role": self.role, "content": content}


@dataclass(frozen=True)
class ConversationState:
    """Snapshot of the fields that drive compaction.

    Attributes:
        message_count: Messages persisted since the last compaction.
        last_compaction_at: Epoch seconds of the last compaction, if any.
    """

    conversation_id: str
    user_id: str
    created_at: float
    message_count: int = 0
    last_compaction_at: float | None = None

    @property
    def compaction_anchor(self) -> float:
        """Time the compaction window is measured from."""
        if self.last_compaction_at is not None:
            return self.last_compaction_at
        return self.created_at


class ConversationStore(Protocol):
    """Keyed storage of conversations and their messages."""

    def get_message(self, message_id: str) -> Message | None: ...

    def get_recent_messages(self, conversation_id: str, limit: int) -> list[Message]: ...

    def get_conversation_state(self, conversation_id: str) -> ConversationState | None: ...

    def persist_assistant_reply(
        self, conversation_id: str, text: str, recipe_json: str | None = None
    ) -> Message: ...

    def mark_compacted(self, conversation_id: str, at: float) -> None: ...

    def consume_request(
        self, user_id: str, daily_limit: int, now: float | None = None
    ) -> bool: ...


class IdentityProvider(Protocol):
    """Resolves the authenticated user of the current request."""

    def current_user_id(self) -> str | None: ...


class StaticIdentity:
    """Identity provider for a single local user."""

    def __init__(self, user_id: str | None) -> None:
        self.user_id = user_id

    def current_user_id(self) -> str | None:
        return self.user_id


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class SQLiteConversationStore:
    """Conversations and messages in a local SQLite database."""

    def __init__(self, db_path: Path) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the conversations and messages tables if missing."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id                  TEXT PRIMARY KEY,
                user_id             TEXT NOT NULL,
                title               TEXT NOT NULL DEFAULT 'New Chat',
                created_at          REAL NOT NULL,
                message_count       INTEGER NOT NULL DEFAULT 0,
                last_compaction_at  REAL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id               TEXT PRIMARY KEY,
                conversation_id  TEXT NOT NULL REFERENCES conversations(id),
                role             TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
                content          TEXT NOT NULL,
                image_analysis   TEXT,
                recipe_json      TEXT,
                created_at       REAL NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS request_usage (
                user_id       TEXT PRIMARY KEY,
                request_count INTEGER NOT NULL DEFAULT 0 CHECK (request_count >= 0),
                window_start  REAL NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_messages_conversation "
            "ON messages(conversation_id, created_at)"
        )
        conn.commit()

    def create_conversation(
        self, user_id: str, title: str = "New Chat", created_at: float | None = None
    ) -> ConversationState:
        """Create an empty conversation for a user."""
        state = ConversationState(
            conversation_id=_new_id("conv"),
            user_id=user_id,
            created_at=created_at if created_at is not None else time.time(),
        )
        conn = self._get_connection()
        conn.execute(
            "INSERT INTO conversations (id, user_id, title, created_at) VALUES (?, ?, ?, ?)",
            (state.conversation_id, user_id, title, state.created_at),
        )
        conn.commit()
        return state

    def add_user_message(
        self,
        conversation_id: str,
        content: str,
        image_analysis: str | None = None,
    ) -> Message:
        """Persist a user message."""
        return self._insert_message(
            conversation_id, "user", content, image_analysis=image_analysis
        )

    def persist_assistant_reply(
        self, conversation_id: str, text: str, recipe_json: str | None = None
    ) -> Message:
        """Persist the assistant reply of a turn."""
        return self._insert_message(
            conversation_id, "assistant", text, recipe_json=recipe_json
        )

    def _insert_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        image_analysis: str | None = None,
        recipe_json: str | None = None,
    ) -> Message:
        message = Message(
            id=_new_id("msg"),
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=time.time(),
            image_analysis=image_analysis,
            recipe_json=recipe_json,
        )
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE conversations SET message_count = message_count + 1 WHERE id = ?",
            (conversation_id,),
        )
        if cursor.rowcount == 0:
            conn.rollback()
            raise KeyError(f"Unknown conversation: {conversation_id}")
        conn.execute(
            """
            INSERT INTO messages
                (id, conversation_id, role, content, image_analysis, recipe_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.id,
                conversation_id,
                role,
                content,
                image_analysis,
                recipe_json,
                message.created_at,
            ),
        )
        conn.commit()
        return message

    def get_message(self, message_id: str) -> Message | None:
        """Get a message by id."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT * FROM messages WHERE id = ?", (message_id,)
        ).fetchone()
        return self._row_to_message(row) if row else None

    def get_recent_messages(self, conversation_id: str, limit: int) -> list[Message]:
        """Get the latest messages of a conversation, most recent first."""
        if limit <= 0:
            return []
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT * FROM messages WHERE conversation_id = ?
            ORDER BY created_at DESC, rowid DESC LIMIT ?
            """,
            (conversation_id, limit),
        )
        return [self._row_to_message(row) for row in cursor.fetchall()]

    def get_conversation_state(self, conversation_id: str) -> ConversationState | None:
        """Read a consistent snapshot of the compaction fields."""
        conn = self._get_connection()
        row = conn.execute(
            """
            SELECT id, user_id, created_at, message_count, last_compaction_at
            FROM conversations WHERE id = ?
            """,
            (conversation_id,),
        ).fetchone()
        if row is None:
            return None
        return ConversationState(
            conversation_id=row["id"],
            user_id=row["user_id"],
            created_at=row["created_at"],
            message_count=row["message_count"],
            last_compaction_at=row["last_compaction_at"],
        )

    def list_conversations(self, user_id: str) -> list[ConversationState]:
        """List a user's conversations, newest first."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT id FROM conversations WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        )
        states = [self.get_conversation_state(row["id"]) for row in cursor.fetchall()]
        return [s for s in states if s is not None]

    def mark_compacted(self, conversation_id: str, at: float) -> None:
        """Record a compaction run and reset the message counter."""
        conn = self._get_connection()
        conn.execute(
            "UPDATE conversations SET last_compaction_at = ?, message_count = 0 WHERE id = ?",
            (at, conversation_id),
        )
        conn.commit()

    def consume_request(
        self,
        user_id: str,
        daily_limit: int,
        now: float | None = None,
    ) -> bool:
        """Count one request against the user's daily allowance.

        The window restarts once a full day has passed since it opened. The
        counter only moves when the request is allowed, so a refused request
        does not use up allowance.

        Args:
            user_id: The requesting user.
            daily_limit: Requests allowed per window.
            now: Epoch seconds, defaults to the current time.

        Returns:
            True if the request is allowed.
        """
        now = time.time() if now is None else now
        conn = self._get_connection()
        row = conn.execute(
            "SELECT request_count, window_start FROM request_usage WHERE user_id = ?",
            (user_id,),
        ).fetchone()

        if row is None or row["window_start"] < now - DAY_SECONDS:
            conn.execute(
                """
                INSERT INTO request_usage (user_id, request_count, window_start)
                VALUES (?, 1, ?)
                ON CONFLICT(user_id) DO UPDATE
                SET request_count = 1, window_start = excluded.window_start
                """,
                (user_id, now),
            )
            conn.commit()
            return True

        cursor = conn.execute(
            """
            UPDATE request_usage SET request_count = request_count + 1
            WHERE user_id = ? AND request_count < ?
            """,
            (user_id, daily_limit),
        )
        conn.commit()
        return cursor.rowcount == 1

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        """Convert a database row to a Message."""
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=row["content"],
            created_at=row["created_at"],
            image_analysis=row["image_analysis"],
            recipe_json=row["recipe_json"],
        )
