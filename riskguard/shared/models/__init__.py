"""Shared domain models for the safety risk engine."""
from .risk import (
    RiskLevel,
    SafetyDecision,
    HumanLabel,
    HumanReviewedStatus,
)
from .assessment import (
    REVIEW_FIELDS,
    RagContextItem,
    SafetyAssessmentDraft,
    SafetyAssessment,
    ModerationPointer,
)

__all__ = [
    "RiskLevel",
    "SafetyDecision",
    "HumanLabel",
    "HumanReviewedStatus",
    "REVIEW_FIELDS",
    "RagContextItem",
    "SafetyAssessmentDraft",
    "SafetyAssessment",
    "ModerationPointer",
]
