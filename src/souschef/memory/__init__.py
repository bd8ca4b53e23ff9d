"""Memory module for the user's dietary profile."""

from .extractor import ExtractedMemory, MemoryExtractor
from .manager import MemoryManager
from .models import (
    AddResult,
    MemoryCategory,
    MemoryFact,
    RemoveResult,
    SanitizeResult,
    UpdateResult,
)
from .sanitizer import sanitize
from .store import MemoryStore
from .tools import (
    AddUserMemoryTool,
    ListUserMemoriesTool,
    RemoveUserMemoryTool,
    UpdateUserMemoryTool,
    build_memory_registry,
)

__all__ = [
    "AddResult",
    "AddUserMemoryTool",
    "ExtractedMemory",
    "ListUserMemoriesTool",
    "MemoryCategory",
    "MemoryExtractor",
    "MemoryFact",
    "MemoryManager",
    "MemoryStore",
    "RemoveResult",
    "RemoveUserMemoryTool",
    "SanitizeResult",
    "UpdateResult",
    "UpdateUserMemoryTool",
    "build_memory_registry",
    "sanitize",
]
