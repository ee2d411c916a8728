"""PII handling utilities.

Two concerns live here:
- Hashing identifiers (reviewers, commenters) before they reach logs.
- Redacting personally identifying spans from comment text before it
  reaches the LLM provider or a training export. Classification and
  export use the same redactor so the model is trained on exactly
  what it saw live.
"""
import hashlib
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Pattern, Tuple

logger = logging.getLogger(__name__)


# Salt should be loaded from AWS Secrets Manager in production
_PII_SALT: Optional[str] = None


def configure_pii_salt(salt: str) -> None:
    """Configure the PII hashing salt from secrets manager.

    Must be called during application startup before any PII hashing.

    Args:
        salt: Secret salt value from AWS Secrets Manager

    Raises:
        ValueError: If salt is empty or too short
    """
    global _PII_SALT
    if not salt or len(salt) < 32:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"reason": "Salt too short or empty", "min_length": 32}
        )
        raise ValueError("PII salt must be at least 32 characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def hash_pii(value: str) -> str:
    """Hash a PII value for safe logging and storage.

    Uses SHA-256 with a secret salt to create a consistent,
    non-reversible hash of user identifiers.

    Args:
        value: The PII value to hash (reviewer ID, email, etc.)

    Returns:
        Hashed string safe for logging

    Raises:
        RuntimeError: If PII salt has not been configured
    """
    if _PII_SALT is None:
        logger.critical(
            "PII_HASH_FAILED",
            extra={"reason": "Salt not configured", "action": "call configure_pii_salt()"}
        )
        raise RuntimeError("PII salt not configured. Call configure_pii_salt() first.")

    salted = f"{_PII_SALT}{value}"
    return hashlib.sha256(salted.encode()).hexdigest()


def hash_text_for_audit(text: str) -> str:
    """Hash comment text for logs without exposing content.

    Args:
        text: Raw comment text

    Returns:
        SHA-256 hash of the text
    """
    return hashlib.sha256(text.encode()).hexdigest()


class PiiType(Enum):
    """Kinds of span the redactor masks."""
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    ADDRESS = "address"


PLACEHOLDERS = {
    PiiType.EMAIL: "[EMAIL]",
    PiiType.PHONE: "[PHONE]",
    PiiType.URL: "[URL]",
    PiiType.ADDRESS: "[ADDRESS]",
}

# Placeholders contain no digits, '@', '/' or street suffixes, so a
# second pass over redacted text finds nothing. Phone numbers may not
# touch a bracket, otherwise masking a neighbour would expose them.
_PATTERNS: List[Tuple[PiiType, Pattern]] = [
    (PiiType.URL, re.compile(r"(?:https?://|www\.)[^\s<>\"']+", re.IGNORECASE)),
    (PiiType.EMAIL, re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")),
    (PiiType.PHONE, re.compile(
        r"(?<![\w\]])(?:\+?\d{1,3}[\s.-]?)?(?:\(\d{2,4}\)[\s.-]?)?\d{3,4}(?:[\s.-]?\d{3,4}){1,2}(?![\w\[])"
    )),
    (PiiType.ADDRESS, re.compile(
        r"\b\d{1,5}\s+(?:[A-Z][a-z]+\s+){1,3}"
        r"(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr)\b\.?"
    )),
]


@dataclass(frozen=True)
class PiiRedaction:
    """One masked span, positioned against the input text."""
    type: PiiType
    start: int
    end: int


@dataclass(frozen=True)
class RedactionResult:
    """Redacted text plus the spans that were masked."""
    text: str
    redactions: List[PiiRedaction] = field(default_factory=list)


def redact_pii(text: str) -> RedactionResult:
    """Mask personally identifying spans with placeholder tokens.

    Overlapping matches resolve to the earliest, then longest, span.
    Idempotent on text: ``redact_pii(redact_pii(x).text).text ==
    redact_pii(x).text``.

    Args:
        text: Raw comment text

    Returns:
        RedactionResult with masked text and span records
    """
    if not text:
        return RedactionResult(text="")

    candidates = []
    for pii_type, pattern in _PATTERNS:
        for match in pattern.finditer(text):
            candidates.append(PiiRedaction(pii_type, match.start(), match.end()))

    candidates.sort(key=lambda r: (r.start, -(r.end - r.start)))

    redactions: List[PiiRedaction] = []
    cursor = 0
    for candidate in candidates:
        if candidate.start < cursor:
            continue
        redactions.append(candidate)
        cursor = candidate.end

    if not redactions:
        return RedactionResult(text=text)

    parts = []
    cursor = 0
    for redaction in redactions:
        parts.append(text[cursor:redaction.start])
        parts.append(PLACEHOLDERS[redaction.type])
        cursor = redaction.end
    parts.append(text[cursor:])

    return RedactionResult(text="".join(parts), redactions=redactions)
