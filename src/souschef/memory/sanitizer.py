"""Sanitization of memory facts before they are stored.

Stored facts are injected into every system prompt, so anything that looks
like an attempt to steer the model is refused outright rather than cleaned.
"""

import re

from .models import SanitizeResult

MAX_FACT_LENGTH = 200

REJECTED_REASON = "Invalid content detected"
EMPTY_REASON = "Empty fact"

INJECTION_PATTERNS = [
    re.compile(
        r"(?:ignore|disregard|forget).*(?:previous|above|all).*(?:instructions?|rules?)",
        re.IGNORECASE | re.DOTALL,
    ),
    re.compile(r"system\s*(?:prompt|message|instruction)", re.IGNORECASE),
    re.compile(r"you\s*are\s*now", re.IGNORECASE),
    re.compile(r"pretend\s*(?:to\s*be|you're)", re.IGNORECASE),
    re.compile(r"\bDAN\b"),
    re.compile(r"jailbreak", re.IGNORECASE),
    re.compile(r"</s>", re.IGNORECASE),
    re.compile(r"\[INST\]", re.IGNORECASE),
    re.compile(r"<<SYS>>", re.IGNORECASE),
    re.compile(r"SYSTEM:", re.IGNORECASE),
    re.compile(r"ASSISTANT:", re.IGNORECASE),
    re.compile(r"Human:", re.IGNORECASE),
    re.compile(r"from\s+now\s+on|starting\s+now|henceforth", re.IGNORECASE),
]

STRUCTURAL_CHARS = re.compile(r"[<>{}\[\]`\\]")
WHITESPACE = re.compile(r"\s+")
USER_PREFIX = "User "


def _has_injection(text: str) -> bool:
    return any(pattern.search(text) for pattern in INJECTION_PATTERNS)


def _rejected(reason: str) -> SanitizeResult:
    return SanitizeResult(sanitized="", modified=True, rejected=True, reason=reason)


def sanitize(raw_fact: str) -> SanitizeResult:
    """Clean and validate a candidate memory fact.

    Steps: trim and truncate, refuse injection signatures, strip characters
    that break prompt structure, collapse whitespace, and prefix "User ".

    Args:
        raw_fact: The fact as written by the model or the user.

    Returns:
        SanitizeResult. When ``rejected`` is True, ``sanitized`` is empty.
    """
    text = raw_fact.strip()
    modified = text != raw_fact

    if len(text) > MAX_FACT_LENGTH:
        text = text[:MAX_FACT_LENGTH]
        modified = True

    if _has_injection(text):
        return _rejected(REJECTED_REASON)

    stripped = STRUCTURAL_CHARS.sub("", text)
    if stripped != text:
        modified = True
        # Removing characters can join a signature back together
        if _has_injection(stripped):
            return _rejected(REJECTED_REASON)
    text = stripped

    collapsed = WHITESPACE.sub(" ", text).strip()
    if collapsed != text:
        modified = True
    text = collapsed

    if not text or text.lower() == USER_PREFIX.strip().lower():
        return _rejected(EMPTY_REASON)

    if not text.lower().startswith(USER_PREFIX.lower()):
        text = USER_PREFIX + text
        modified = True

    if len(text) > MAX_FACT_LENGTH:
        text = text[:MAX_FACT_LENGTH].rstrip()
        modified = True

    # Collapsing whitespace and prefixing can complete a signature too
    if _has_injection(text):
        return _rejected(REJECTED_REASON)

    return SanitizeResult(sanitized=text, modified=modified)


def escape_for_prompt(fact: str) -> str:
    """Escape a fact for inline embedding inside a prompt."""
    return (
        fact.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", " ")
        .replace("\r", "")
    )
