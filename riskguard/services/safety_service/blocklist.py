"""Layer 1: deterministic blocklist matcher.

A hit is a hard safety signal. The decision composer holds the comment
regardless of anything the classifier says afterwards.
"""
from dataclasses import dataclass
from typing import Iterable, Optional

from .text_normalizer import normalize_text


@dataclass(frozen=True)
class BlocklistResult:
    """Outcome of a Layer 1 check."""
    hit: bool
    matched: Optional[str] = None

    @property
    def reason(self) -> str:
        return f"Blocklist pattern matched: {self.matched}" if self.hit else ""


NO_HIT = BlocklistResult(hit=False)


def check_blocklist(content: str, blocklist: Iterable[str]) -> BlocklistResult:
    """Check content against operator-curated terms.

    Matching is a normalized, case-insensitive substring test. Terms are
    tried in configured order and the first hit wins; the matched term
    is returned as configured, not normalized.

    Args:
        content: Comment text (already PII-redacted)
        blocklist: Configured terms

    Returns:
        BlocklistResult with the first matching term, if any
    """
    if not content or not blocklist:
        return NO_HIT

    normalized_content = normalize_text(content)
    if not normalized_content:
        return NO_HIT

    for term in blocklist:
        if not term:
            continue
        normalized_term = normalize_text(term)
        if normalized_term and normalized_term in normalized_content:
            return BlocklistResult(hit=True, matched=term)

    return NO_HIT
