"""Memory extraction from conversation history using the LLM."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from ..llm_client import LLMClient
from .models import HIGH_CONFIDENCE, MemoryCategory
from .sanitizer import escape_for_prompt

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """You are a memory extraction system for a culinary assistant. Analyze these chat histories and extract ONLY meaningful user dietary information worth remembering long-term.

**Extract these categories (use exact category names):**

1. "allergy" - Medical, potentially life-threatening (HIGHEST PRIORITY)
   Examples: "User is allergic to peanuts", "User has a shellfish allergy"

2. "intolerance" - Medical but not severe, traces usually acceptable
   Examples: "User is lactose intolerant", "User has gluten sensitivity"

3. "restriction" - Hard limits, non-medical (religious, ethical, firm lifestyle)
   Examples: "User is vegan", "User keeps halal", "User is kosher"

4. "equipment" - Kitchen equipment constraints or capabilities
   Examples: "User doesn't have an oven", "User has an Instant Pot"

5. "goal" - Aspirational dietary goals
   Examples: "User is trying to eat less sugar", "User wants high-protein meals"

6. "preference" - Flexible dislikes, lifestyle choices (LOWEST PRIORITY)
   Examples: "User doesn't like cilantro", "User prefers spicy food"

**Extraction Rules:**
- Be concise: "User is allergic to peanuts" NOT "In a conversation, the user mentioned a peanut allergy"
- Deduplicate: never repeat a fact listed under existing memories, even if phrased differently
- Mark confidence "high" ONLY for clear, explicit statements by the user
- Look for phrases like: "I'm allergic to", "I can't eat", "I don't have a", "I always", "I never"

**Output Format (JSON only, no explanation):**
```json
{
  "memories": [
    {"fact": "User is allergic to tree nuts", "category": "allergy", "confidence": "high"}
  ]
}
```

If no new facts to extract, return: {"memories": []}

**Chat histories to analyze:**
{chat_histories}

**Existing memories (avoid duplicates):**
{existing_memories}"""

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")
_PLACEHOLDER = re.compile(r"\{(chat_histories|existing_memories)\}")


@dataclass(frozen=True)
class ExtractedMemory:
    """A memory proposed by the extraction model."""

    fact: str
    category: MemoryCategory
    confidence: str


def format_conversation(messages: list[dict[str, Any]]) -> str:
    """Format user/assistant messages as a transcript."""
    lines = []
    for msg in messages:
        role = msg.get("role")
        content = msg.get("content", "")
        if role == "user":
            lines.append(f"USER: {content}")
        elif role == "assistant":
            lines.append(f"ASSISTANT: {content}")
        # Skip system and tool messages
    return "\n".join(lines)


def parse_memories(content: str) -> list[ExtractedMemory]:
    """Parse the extraction response permissively.

    Looks for a fenced JSON block first, then a bare ``{...}`` span. Any
    parse failure yields an empty list. Only high-confidence items with a
    known category survive.
    """
    match = _FENCED_JSON.search(content) or _BARE_OBJECT.search(content)
    if not match:
        return []
    json_str = match.group(1) if match.re is _FENCED_JSON else match.group(0)

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse extraction response: %s", e)
        return []

    if not isinstance(data, dict) or not isinstance(data.get("memories"), list):
        logger.warning("Invalid extraction response: missing 'memories' list")
        return []

    memories = []
    for item in data["memories"]:
        if not isinstance(item, dict):
            continue
        fact = item.get("fact")
        confidence = item.get("confidence")
        if not isinstance(fact, str) or not fact.strip():
            continue
        if confidence != HIGH_CONFIDENCE:
            logger.debug("Discarding %s-confidence memory: %s", confidence, fact)
            continue
        try:
            category = MemoryCategory.parse(item.get("category", ""))
        except ValueError:
            logger.warning("Skipping memory with unknown category: %s", item)
            continue
        memories.append(ExtractedMemory(fact=fact, category=category, confidence=confidence))
    return memories


class MemoryExtractor:
    """Distills chat history into high-confidence memory facts."""

    def __init__(self, llm: LLMClient, max_tokens: int = 2048) -> None:
        """Initialize the extractor.

        Args:
            llm: Client used for the extraction call.
            max_tokens: Completion token limit for the extraction call.
        """
        self.llm = llm
        self.max_tokens = max_tokens

    def build_prompt(
        self, messages: list[dict[str, Any]], existing_facts: list[str]
    ) -> str:
        existing = (
            "\n".join(f"- {escape_for_prompt(f)}" for f in existing_facts)
            if existing_facts
            else "None yet"
        )
        values = {
            "chat_histories": format_conversation(messages),
            "existing_memories": existing,
        }
        # One pass, so placeholder text inside the chat is left alone
        return _PLACEHOLDER.sub(lambda m: values[m.group(1)], EXTRACTION_PROMPT)

    async def extract(
        self, messages: list[dict[str, Any]], existing_facts: list[str]
    ) -> list[ExtractedMemory]:
        """Extract memories from a conversation.

        Args:
            messages: Conversation messages, oldest first.
            existing_facts: Facts already stored, listed for deduplication.

        Returns:
            High-confidence memories; empty if none or unparseable.

        Raises:
            UpstreamModelError: The extraction request failed.
        """
        if not messages:
            return []

        completion = await self.llm.complete(
            [{"role": "user", "content": self.build_prompt(messages, existing_facts)}],
            max_tokens=self.max_tokens,
            temperature=0,
        )
        return parse_memories(completion.content or "")
