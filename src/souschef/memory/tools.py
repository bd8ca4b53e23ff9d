"""Function-calling tools that let the model manage the user's memory."""

import json
from typing import Any

from ..tools.base import Tool, ToolResult
from ..tools.registry import ToolRegistry
from .manager import DUPLICATE_REASON, MemoryManager
from .models import MemoryCategory, MemoryFact

CATEGORY_SCHEMA: dict[str, Any] = {
    "type": "string",
    "enum": MemoryCategory.values(),
    "description": (
        "allergy (life-threatening), intolerance (digestive), restriction "
        "(vegan, halal, kosher...), equipment (kitchen tools), goal "
        "(dietary goals), preference (likes/dislikes)"
    ),
}


def _fact_payload(fact: MemoryFact) -> dict[str, Any]:
    return {
        "id": fact.id,
        "fact": fact.fact,
        "category": fact.category.value,
        "extractedAt": fact.extracted_at,
    }


def _json(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False)


class MemoryTool(Tool):
    """Base for tools operating on a user-scoped MemoryManager."""

    def __init__(self, manager: MemoryManager, conversation_id: str | None = None) -> None:
        """Initialize with a memory manager.

        Args:
            manager: The MemoryManager scoped to the current user.
            conversation_id: Conversation recorded as provenance for new facts.
        """
        self.manager = manager
        self.conversation_id = conversation_id


class ListUserMemoriesTool(MemoryTool):
    """Tool for listing what is remembered about the user."""

    @property
    def name(self) -> str:
        return "list_user_memories"

    @property
    def description(self) -> str:
        return (
            "List everything remembered about the user's dietary profile. "
            "Use when the user asks what you know or remember about them."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"category": CATEGORY_SCHEMA},
            "required": [],
            "additionalProperties": False,
        }

    async def execute(self, **kwargs: Any) -> ToolResult:
        facts = self.manager.list(kwargs.get("category"))
        return ToolResult(
            success=True,
            output=_json({
                "count": len(facts),
                "memories": [_fact_payload(f) for f in facts],
            }),
        )


class AddUserMemoryTool(MemoryTool):
    """Tool for saving a new fact about the user."""

    @property
    def name(self) -> str:
        return "add_user_memory"

    @property
    def description(self) -> str:
        return (
            "Remember a new fact about the user's diet, allergies, equipment, "
            "goals or preferences. Phrase it as 'User is/has/prefers ...'."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "fact": {
                    "type": "string",
                    "description": "The fact, e.g. 'User has an air fryer'",
                },
                "category": CATEGORY_SCHEMA,
            },
            "required": ["fact", "category"],
            "additionalProperties": False,
        }

    async def execute(self, **kwargs: Any) -> ToolResult:
        """Add a fact.

        Args:
            fact: The fact text.
            category: One of the memory categories.

        Returns:
            ToolResult whose output says whether the fact was created.
        """
        result = self.manager.add(
            kwargs["fact"],
            kwargs["category"],
            source_conversation_id=self.conversation_id,
        )

        if result.created and result.fact is not None:
            return ToolResult(
                success=True,
                output=_json({
                    "success": True,
                    "message": f'Remembered: "{result.fact.fact}" ({result.fact.category.value})',
                    "memory": _fact_payload(result.fact),
                }),
            )

        if result.fact is not None:
            return ToolResult(
                success=True,
                output=_json({
                    "success": False,
                    "isDuplicate": True,
                    "message": f'Similar memory already exists: "{result.fact.fact}"',
                    "existingFact": result.fact.fact,
                }),
            )

        return ToolResult(
            success=True,
            output=_json({
                "success": False,
                "message": f"Memory was not saved: {result.reason}",
            }),
        )


class RemoveUserMemoryTool(MemoryTool):
    """Tool for forgetting a fact about the user."""

    @property
    def name(self) -> str:
        return "remove_user_memory"

    @property
    def description(self) -> str:
        return (
            "Forget a remembered fact. Matches facts containing the search "
            "term (case-insensitive), e.g. 'peanut' or 'air fryer'."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "search_term": {
                    "type": "string",
                    "description": "Text contained in the fact to forget",
                },
            },
            "required": ["search_term"],
            "additionalProperties": False,
        }

    async def execute(self, **kwargs: Any) -> ToolResult:
        search_term = kwargs["search_term"]
        result = self.manager.remove_by_search(search_term)

        if not result.removed or result.fact is None:
            return ToolResult(
                success=True,
                output=_json({
                    "success": False,
                    "message": f'No memories found matching "{search_term}"',
                }),
            )

        return ToolResult(
            success=True,
            output=_json({
                "success": True,
                "message": f'Deleted memory: "{result.fact.fact}"',
                "deletedFact": result.fact.fact,
            }),
        )


class UpdateUserMemoryTool(MemoryTool):
    """Tool for changing a remembered fact or its category."""

    @property
    def name(self) -> str:
        return "update_user_memory"

    @property
    def description(self) -> str:
        return (
            "Update a remembered fact found by search term. Provide new_fact, "
            "new_category, or both."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "search_term": {
                    "type": "string",
                    "description": "Text contained in the fact to update",
                },
                "new_fact": {
                    "type": "string",
                    "description": "Replacement fact text",
                },
                "new_category": CATEGORY_SCHEMA,
            },
            "required": ["search_term"],
            "additionalProperties": False,
        }

    async def execute(self, **kwargs: Any) -> ToolResult:
        search_term = kwargs["search_term"]
        result = self.manager.update_by_search(
            search_term,
            new_fact=kwargs.get("new_fact"),
            new_category=kwargs.get("new_category"),
        )

        if result.updated and result.fact is not None and result.previous is not None:
            return ToolResult(
                success=True,
                output=_json({
                    "success": True,
                    "message": (
                        f'Updated memory from "{result.previous.fact}" to '
                        f'"{result.fact.fact}" ({result.fact.category.value})'
                    ),
                    "oldFact": result.previous.fact,
                    "newFact": result.fact.fact,
                    "category": result.fact.category.value,
                }),
            )

        if result.reason == DUPLICATE_REASON:
            message = "Another memory already says that; nothing was changed"
        else:
            message = result.reason or f'No memory found matching "{search_term}"'
        return ToolResult(
            success=True,
            output=_json({"success": False, "message": message}),
        )


def build_memory_registry(
    manager: MemoryManager, conversation_id: str | None = None
) -> ToolRegistry:
    """Create a registry holding the four memory tools for one user."""
    return ToolRegistry([
        ListUserMemoriesTool(manager, conversation_id),
        AddUserMemoryTool(manager, conversation_id),
        RemoveUserMemoryTool(manager, conversation_id),
        UpdateUserMemoryTool(manager, conversation_id),
    ])
