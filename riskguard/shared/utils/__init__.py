"""Shared utilities for the safety risk engine."""
from .pii import (
    hash_pii,
    hash_text_for_audit,
    configure_pii_salt,
    redact_pii,
    PiiType,
    PiiRedaction,
    RedactionResult,
)

__all__ = [
    "hash_pii",
    "hash_text_for_audit",
    "configure_pii_salt",
    "redact_pii",
    "PiiType",
    "PiiRedaction",
    "RedactionResult",
]
