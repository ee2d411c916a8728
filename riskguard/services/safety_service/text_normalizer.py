"""Text normalization for blocklist matching.

Comment text and blocklist terms go through the same normalization so
that styled or padded text (fullwidth letters, circled letters,
zero-width joiners, odd spacing) still matches a plain term.
"""
import logging
import unicodedata
from typing import FrozenSet, Optional

logger = logging.getLogger(__name__)


# Characters to strip (zero-width, invisible)
STRIP_CHARS: FrozenSet[str] = frozenset({
    "\u200b",  # Zero-width space
    "\u200c",  # Zero-width non-joiner
    "\u200d",  # Zero-width joiner
    "\ufeff",  # Byte order mark
    "\u00ad",  # Soft hyphen
    "\u2060",  # Word joiner
})


class TextNormalizer:
    """Normalizes text ahead of case-insensitive substring matching.

    Handles:
    - Zero-width and invisible characters
    - Unicode compatibility forms (Ａ → A, ⓚ → k, 𝐤 → k)
    - Runs of whitespace, including newlines
    - Case (casefold, so ß matches ss)
    """

    def __init__(self):
        logger.info(
            "TEXT_NORMALIZER_INITIALIZED",
            extra={"strip_chars": len(STRIP_CHARS), "unicode_form": "NFKC"}
        )

    def normalize(self, text: str) -> str:
        """Normalize text for matching.

        Args:
            text: Raw input text

        Returns:
            Normalized text
        """
        if not text:
            return ""

        result = "".join(c for c in text if c not in STRIP_CHARS)
        result = unicodedata.normalize("NFKC", result)
        result = " ".join(result.split())
        return result.casefold()


_normalizer: Optional[TextNormalizer] = None


def get_normalizer() -> TextNormalizer:
    """Get the shared TextNormalizer instance."""
    global _normalizer
    if _normalizer is None:
        _normalizer = TextNormalizer()
    return _normalizer


def normalize_text(text: str) -> str:
    """Convenience function to normalize text.

    Args:
        text: Raw input text

    Returns:
        Normalized text for pattern matching
    """
    return get_normalizer().normalize(text)
