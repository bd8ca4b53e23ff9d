"""User-scoped memory operations: dedup, search, and prompt formatting."""

from __future__ import annotations

import logging
import re

from .models import (
    AddResult,
    MemoryCategory,
    MemoryFact,
    RemoveResult,
    UpdateResult,
)
from .sanitizer import sanitize
from .store import MemoryStore

logger = logging.getLogger(__name__)

DUPLICATE_REASON = "duplicate"
NO_UPDATES_REASON = "No updates provided"

_USER_PREFIX = re.compile(r"^user\s+")
# First-person openings and the third-person form they are stored as
_FIRST_PERSON = [
    (re.compile(r"^(?:i['’]m|im|i am)\b"), "is"),
    (re.compile(r"^(?:i['’]ve|i have)\b"), "has"),
    (re.compile(r"^i was\b"), "was"),
]
_TRAILING_PUNCT = re.compile(r"[\s.!?,;:]+$")

_PROFILE_HEADINGS = {
    MemoryCategory.ALLERGY: "ALLERGIES (CRITICAL - NEVER INCLUDE):",
    MemoryCategory.INTOLERANCE: "INTOLERANCES (avoid, traces may be acceptable):",
    MemoryCategory.RESTRICTION: "DIETARY RESTRICTIONS (hard limits):",
    MemoryCategory.EQUIPMENT: "KITCHEN EQUIPMENT:",
    MemoryCategory.GOAL: "DIETARY GOALS:",
    MemoryCategory.PREFERENCE: "PREFERENCES:",
}


def fact_core(fact: str) -> str:
    """Reduce a fact to the predicate compared for duplicate detection.

    The "User " prefix is dropped and a first-person opening is rewritten in
    the third person, so "User is allergic to peanuts" and "I'm ALLERGIC to
    Peanuts." both reduce to "is allergic to peanuts". Everything else in
    the predicate is kept, including negations.
    """
    text = " ".join(fact.lower().split())
    text = _TRAILING_PUNCT.sub("", text)
    text = _USER_PREFIX.sub("", text, count=1)
    for pattern, replacement in _FIRST_PERSON:
        text, count = pattern.subn(replacement, text, count=1)
        if count:
            break
    return text


def is_duplicate(candidate: str, existing: str) -> bool:
    """Case-insensitive equality/substring match between two facts."""
    a = fact_core(candidate)
    b = fact_core(existing)
    if not a or not b:
        return False
    return a == b or a in b or b in a


class MemoryManager:
    """Memory operations scoped to one authenticated user.

    Both the interactive tool path and background compaction write through
    this class, so sanitization and deduplication apply to every entry point.
    """

    def __init__(self, store: MemoryStore, user_id: str) -> None:
        """Initialize the manager for a user.

        Args:
            store: The MemoryStore for persistence.
            user_id: The authenticated user all operations are scoped to.
        """
        self.store = store
        self.user_id = user_id

    def list(self, category: str | MemoryCategory | None = None) -> list[MemoryFact]:
        """List the user's facts, optionally filtered by category."""
        if category is None:
            return self.store.get_by_user(self.user_id)
        return self.store.get_by_user(self.user_id, MemoryCategory.parse(category))

    def existing_facts(self) -> list[str]:
        """Return the text of every stored fact for the user."""
        return [f.fact for f in self.store.get_by_user(self.user_id)]

    def find_duplicate(
        self, fact: str, exclude_id: int | None = None
    ) -> MemoryFact | None:
        """Find an existing fact (any category) equivalent to ``fact``."""
        for existing in self.store.get_by_user(self.user_id):
            if existing.id == exclude_id:
                continue
            if is_duplicate(fact, existing.fact):
                return existing
        return None

    def add(
        self,
        fact: str,
        category: str | MemoryCategory,
        source_conversation_id: str | None = None,
    ) -> AddResult:
        """Sanitize and store a new fact unless it duplicates an existing one.

        Args:
            fact: Raw fact text.
            category: Category value; unknown values raise InvalidCategoryError.
            source_conversation_id: Optional provenance link.

        Returns:
            AddResult. Rejections and duplicates have ``created=False``.
        """
        parsed = MemoryCategory.parse(category)

        result = sanitize(fact)
        if result.rejected:
            logger.info("Rejected memory fact for user %s: %s", self.user_id, result.reason)
            return AddResult(created=False, reason=result.reason)

        duplicate = self.find_duplicate(result.sanitized)
        if duplicate is not None:
            return AddResult(created=False, fact=duplicate, reason=DUPLICATE_REASON)

        saved = self.store.insert(
            MemoryFact(
                user_id=self.user_id,
                fact=result.sanitized,
                category=parsed,
                source_conversation_id=source_conversation_id,
            )
        )
        return AddResult(created=True, fact=saved)

    def search(self, search_term: str) -> MemoryFact | None:
        """Return the first (oldest) fact containing ``search_term``."""
        term = search_term.strip().lower()
        if not term:
            return None
        for fact in self.store.get_by_user(self.user_id):
            if term in fact.fact.lower():
                return fact
        return None

    def remove_by_search(self, search_term: str) -> RemoveResult:
        """Remove the best match for ``search_term``.

        No match is a normal negative result, not an error.
        """
        match = self.search(search_term)
        if match is None or match.id is None:
            return RemoveResult(removed=False)
        self.store.delete(match.id)
        return RemoveResult(removed=True, fact=match)

    def update_by_search(
        self,
        search_term: str,
        new_fact: str | None = None,
        new_category: str | MemoryCategory | None = None,
    ) -> UpdateResult:
        """Update the best match for ``search_term`` in place.

        ``new_fact`` goes through the same sanitizer as ``add`` and is
        refused if another stored fact already says the same thing.
        """
        category = MemoryCategory.parse(new_category) if new_category else None
        if not new_fact and category is None:
            return UpdateResult(updated=False, reason=NO_UPDATES_REASON)

        match = self.search(search_term)
        if match is None or match.id is None:
            return UpdateResult(updated=False)

        sanitized: str | None = None
        if new_fact:
            result = sanitize(new_fact)
            if result.rejected:
                return UpdateResult(updated=False, previous=match, reason=result.reason)
            sanitized = result.sanitized
            if self.find_duplicate(sanitized, exclude_id=match.id) is not None:
                return UpdateResult(
                    updated=False, previous=match, reason=DUPLICATE_REASON
                )

        updated = self.store.update(match.id, fact=sanitized, category=category)
        if updated is None:
            return UpdateResult(updated=False)
        return UpdateResult(updated=True, fact=updated, previous=match)

    def delete(self, fact_id: int) -> bool:
        """Delete a fact by id if it belongs to this user (settings path)."""
        fact = self.store.get(fact_id)
        if fact is None or fact.user_id != self.user_id:
            return False
        return self.store.delete(fact_id)

    def format_for_prompt(self, facts: list[MemoryFact]) -> str:
        """Format facts as the dietary profile block of the system prompt.

        Categories are rendered in priority order so allergies come first.

        Args:
            facts: List of facts to format.

        Returns:
            The profile block, or empty string if no facts.
        """
        if not facts:
            return ""

        sections = ["**User Dietary Profile (ALWAYS RESPECT):**"]
        for category in MemoryCategory:
            lines = [f"  - {f.fact}" for f in facts if f.category == category]
            if lines:
                sections.append(_PROFILE_HEADINGS[category] + "\n" + "\n".join(lines))
        return "\n\n".join(sections)
