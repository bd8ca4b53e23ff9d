"""Data models for the memory system."""

from dataclasses import dataclass
from enum import Enum

from ..errors import InvalidCategoryError


class MemoryCategory(str, Enum):
    """Closed set of categories a fact can belong to.

    Declaration order is the priority order used when the dietary profile
    is rendered into the system prompt (allergies first).
    """

    ALLERGY = "allergy"
    INTOLERANCE = "intolerance"
    RESTRICTION = "restriction"
    EQUIPMENT = "equipment"
    GOAL = "goal"
    PREFERENCE = "preference"

    @classmethod
    def parse(cls, value: "str | MemoryCategory") -> "MemoryCategory":
        """Parse a raw category value, rejecting anything outside the enum."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidCategoryError(
                f"Unknown memory category: {value!r} "
                f"(expected one of: {', '.join(cls.values())})"
            ) from None

    @classmethod
    def values(cls) -> list[str]:
        return [c.value for c in cls]


HIGH_CONFIDENCE = "high"


@dataclass(frozen=True)
class MemoryFact:
    """A fact stored in memory about a user's dietary profile.

    Attributes:
        user_id: Owning user; never changes after creation.
        fact: Sanitized statement in the form "User <predicate>".
        category: One of the MemoryCategory values.
        id: Database ID, None for facts not yet stored.
        confidence: Always "high" for stored facts.
        extracted_at: ISO timestamp when created.
        source_conversation_id: Conversation the fact came from, if any.
    """

    user_id: str
    fact: str
    category: MemoryCategory
    id: int | None = None
    confidence: str = HIGH_CONFIDENCE
    extracted_at: str | None = None
    source_conversation_id: str | None = None


@dataclass(frozen=True)
class SanitizeResult:
    """Outcome of sanitizing a candidate fact."""

    sanitized: str
    modified: bool
    rejected: bool = False
    reason: str | None = None


@dataclass(frozen=True)
class AddResult:
    """Outcome of adding a fact.

    When the fact is a duplicate, ``fact`` is the existing fact.
    """

    created: bool
    fact: MemoryFact | None = None
    reason: str | None = None


@dataclass(frozen=True)
class RemoveResult:
    """Outcome of removing a fact by search."""

    removed: bool
    fact: MemoryFact | None = None


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of updating a fact by search."""

    updated: bool
    fact: MemoryFact | None = None
    previous: MemoryFact | None = None
    reason: str | None = None
