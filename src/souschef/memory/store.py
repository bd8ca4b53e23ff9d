"""SQLite storage for user memory facts."""

import sqlite3
from pathlib import Path

from .models import HIGH_CONFIDENCE, MemoryCategory, MemoryFact

_CATEGORY_CHECK = ", ".join(f"'{value}'" for value in MemoryCategory.values())

_COLUMNS = (
    "id, user_id, fact, category, confidence, extracted_at, source_conversation_id"
)


class MemoryStore:
    """Persistent storage for memory facts using SQLite.

    The store is a plain keyed record layer. Sanitization, deduplication and
    user scoping of search operations live in MemoryManager.
    """

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
        """Create the user_memories table if it doesn't exist."""
        conn = self._get_connection()
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS user_memories (
                id                      INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id                 TEXT NOT NULL,
                fact                    TEXT NOT NULL,
                category                TEXT NOT NULL
                                        CHECK (category IN ({_CATEGORY_CHECK})),
                confidence              TEXT NOT NULL DEFAULT '{HIGH_CONFIDENCE}'
                                        CHECK (confidence = '{HIGH_CONFIDENCE}'),
                extracted_at            TEXT NOT NULL DEFAULT (datetime('now')),
                source_conversation_id  TEXT
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_memories_user ON user_memories(user_id)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_memories_user_category "
            "ON user_memories(user_id, category)"
        )
        conn.commit()

    def insert(self, fact: MemoryFact) -> MemoryFact:
        """Insert a fact.

        Args:
            fact: The fact to insert (its id is ignored).

        Returns:
            The fact with its assigned id and timestamp.
        """
        category = MemoryCategory.parse(fact.category)
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO user_memories
                (user_id, fact, category, confidence, source_conversation_id)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id, extracted_at
            """,
            (
                fact.user_id,
                fact.fact,
                category.value,
                HIGH_CONFIDENCE,
                fact.source_conversation_id,
            ),
        )
        row = cursor.fetchone()
        conn.commit()
        return MemoryFact(
            id=row["id"],
            user_id=fact.user_id,
            fact=fact.fact,
            category=category,
            extracted_at=row["extracted_at"],
            source_conversation_id=fact.source_conversation_id,
        )

    def get(self, fact_id: int) -> MemoryFact | None:
        """Get a fact by its id."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"SELECT {_COLUMNS} FROM user_memories WHERE id = ?", (fact_id,)
        )
        row = cursor.fetchone()
        return self._row_to_fact(row) if row else None

    def get_by_user(
        self, user_id: str, category: MemoryCategory | None = None
    ) -> list[MemoryFact]:
        """Get a user's facts, oldest first.

        Args:
            user_id: The owning user.
            category: Optional category filter.

        Returns:
            List of facts.
        """
        conn = self._get_connection()
        if category is None:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM user_memories WHERE user_id = ? ORDER BY id",
                (user_id,),
            )
        else:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM user_memories "
                "WHERE user_id = ? AND category = ? ORDER BY id",
                (user_id, MemoryCategory.parse(category).value),
            )
        return [self._row_to_fact(row) for row in cursor.fetchall()]

    def update(
        self,
        fact_id: int,
        fact: str | None = None,
        category: MemoryCategory | None = None,
    ) -> MemoryFact | None:
        """Replace the fact text and/or category of a stored fact in place.

        Returns:
            The updated fact, or None if no fact has that id.
        """
        assignments: list[str] = []
        params: list[str | int] = []
        if fact is not None:
            assignments.append("fact = ?")
            params.append(fact)
        if category is not None:
            assignments.append("category = ?")
            params.append(MemoryCategory.parse(category).value)
        if not assignments:
            return self.get(fact_id)

        conn = self._get_connection()
        cursor = conn.execute(
            f"UPDATE user_memories SET {', '.join(assignments)} WHERE id = ?",
            (*params, fact_id),
        )
        conn.commit()
        if cursor.rowcount == 0:
            return None
        return self.get(fact_id)

    def delete(self, fact_id: int) -> bool:
        """Delete a fact by its id.

        Returns:
            True if a fact was deleted, False otherwise.
        """
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM user_memories WHERE id = ?", (fact_id,))
        conn.commit()
        return cursor.rowcount > 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _row_to_fact(self, row: sqlite3.Row) -> MemoryFact:
        """Convert a database row to a MemoryFact."""
        return MemoryFact(
            id=row["id"],
            user_id=row["user_id"],
            fact=row["fact"],
            category=MemoryCategory(row["category"]),
            confidence=row["confidence"],
            extracted_at=row["extracted_at"],
            source_conversation_id=row["source_conversation_id"],
        )
