"""Topic and abuse guardrails around a chat turn.

Three independent, stateless gates:

1. ``check_abuse`` - local pattern match on the raw user message. A hit ends
   the turn before any model call.
2. ``TopicClassifier`` - keyword fast path, then a tiny classification call
   for ambiguous messages. Fails open: if the provider errors, the message
   is allowed and a warning is logged. The system prompt and the output
   guardrail still apply, and refusing every message during a provider
   hiccup would make the assistant unusable.
3. ``check_output`` - scans the final reply for off-topic leakage.
"""

import logging
import re
from dataclasses import dataclass

from .llm_client import LLMClient

logger = logging.getLogger(__name__)

OFF_TOPIC_REDIRECT = (
    "I'm your cooking assistant! I specialize in recipes, meal planning, and "
    "all things food-related. What would you like to cook today?"
)

OUTPUT_REDIRECT = (
    "I'm your cooking assistant! I'd love to help you with recipes, meal "
    "planning, or food-related questions. What would you like to cook today?"
)

ABUSE_PATTERNS = [
    re.compile(r"ignore.*(?:previous|above|all).*instructions", re.IGNORECASE | re.DOTALL),
    re.compile(r"system\s*prompt", re.IGNORECASE),
    re.compile(r"you\s*are\s*now", re.IGNORECASE),
    re.compile(r"pretend\s*(?:to\s*be|you're)", re.IGNORECASE),
    re.compile(r"\bDAN\b"),
    re.compile(r"jailbreak", re.IGNORECASE),
]

CULINARY_KEYWORDS = re.compile(
    r"\b(cook|recipe|ingredient|meal|food|eat|kitchen|dinner|lunch|breakfast|"
    r"bake|fry|grill|prep|dish|cuisine|flavor|taste|spice|herb|vegetable|fruit|"
    r"meat|fish|dairy|vegan|vegetarian|allergy|allergic|intolerant|gluten|nut|"
    r"egg|soy|shellfish|kosher|halal|protein|carb|calorie|nutrition|roast|saute|"
    r"steam|boil|simmer|marinate|season|chop|slice|dice)\b",
    re.IGNORECASE,
)

MEMORY_KEYWORDS = re.compile(
    r"\b(remember|forget|know about me|my preferences|my allergies|my diet|"
    r"what do you know|update|remove|delete|i('m| am) (not|no longer)|"
    r"i (just|recently) (got|bought|have)|air fryer|instant pot|equipment)\b",
    re.IGNORECASE,
)

OFF_TOPIC_OUTPUT_PATTERNS = [
    re.compile(r"here's the code", re.IGNORECASE),
    re.compile(r"```(python|javascript|java|cpp|sql|html|css)", re.IGNORECASE),
    re.compile(r"let me help you with that math", re.IGNORECASE),
    re.compile(r"here's how to write", re.IGNORECASE),
    re.compile(r"\bpolitical\b.*\bopinion\b", re.IGNORECASE),
    re.compile(r"def\s+\w+\s*\(", re.IGNORECASE),
    re.compile(r"function\s+\w+\s*\(", re.IGNORECASE),
]

TOPIC_CLASSIFIER_PROMPT = """Classify if this message is culinary-related. Culinary includes:
- Cooking, recipes, ingredients
- Meal planning, food prep
- Dietary needs, allergies, restrictions
- Kitchen equipment, techniques
- Food storage, safety
- Grocery shopping for cooking

Respond with ONLY "culinary" or "off-topic".

Message: "{message}"
"""

CLASSIFIER_INPUT_LIMIT = 500


def check_abuse(message: str) -> bool:
    """Return True if the message matches a jailbreak/injection pattern."""
    return any(pattern.search(message) for pattern in ABUSE_PATTERNS)


def check_output(reply: str) -> bool:
    """Return True if the reply is safe to show, False if it leaked off-topic."""
    return not any(pattern.search(reply) for pattern in OFF_TOPIC_OUTPUT_PATTERNS)


def matches_local_keywords(message: str) -> bool:
    """Culinary or memory-management keywords that skip classification."""
    return bool(CULINARY_KEYWORDS.search(message) or MEMORY_KEYWORDS.search(message))


@dataclass(frozen=True)
class TopicVerdict:
    """Topic classification outcome."""

    is_culinary: bool
    confidence: float
    redirect_message: str | None = None


class TopicClassifier:
    """Decides whether an ambiguous message is about food."""

    def __init__(self, llm: LLMClient) -> None:
        """Initialize the classifier.

        Args:
            llm: Client used for the classification call.
        """
        self.llm = llm

    async def classify(self, message: str) -> TopicVerdict:
        """Classify a user message.

        Args:
            message: The raw user message.

        Returns:
            TopicVerdict. Off-topic verdicts carry the redirect message.
        """
        if matches_local_keywords(message):
            return TopicVerdict(is_culinary=True, confidence=0.9)

        prompt = TOPIC_CLASSIFIER_PROMPT.format(
            message=message[:CLASSIFIER_INPUT_LIMIT]
        )
        try:
            completion = await self.llm.complete(
                [{"role": "user", "content": prompt}],
                max_tokens=10,
                temperature=0,
            )
        except Exception as e:
            logger.warning("Topic classifier failed, allowing message: %s", e)
            return TopicVerdict(is_culinary=True, confidence=0.5)

        label = (completion.content or "").strip().strip(".\"'").lower()
        if label == "culinary":
            return TopicVerdict(is_culinary=True, confidence=0.85)
        return TopicVerdict(
            is_culinary=False,
            confidence=0.85,
            redirect_message=OFF_TOPIC_REDIRECT,
        )
