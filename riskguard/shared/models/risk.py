"""Risk level and moderation decision domain models.

This file defines the core enums used across the safety risk engine.
Risk levels are ordinal: declaration order is severity order.
"""
from enum import Enum
from typing import Union


class RiskLevel(Enum):
    """Classifier risk levels, least to most severe."""
    SAFE = "Safe"               # Everyday language, hyperbole included
    LOW = "Low"                 # Mild distress, no crisis indicators
    UNCERTAIN = "Uncertain"     # Ambiguous; route to a human
    HIGH_RISK = "High_Risk"     # Self-harm or suicidal intent indicators

    @property
    def ordinal(self) -> int:
        """Position in severity order (SAFE == 0)."""
        return list(RiskLevel).index(self)

    def at_least(self, other: "RiskLevel") -> bool:
        """Whether this level is as severe as ``other`` or worse."""
        return self.ordinal >= other.ordinal

    @classmethod
    def parse(cls, value: Union[str, "RiskLevel"]) -> "RiskLevel":
        """Parse a stored or wire value.

        Raises:
            ValueError: If the value is not a known risk level
        """
        if isinstance(value, cls):
            return value
        return cls(value)


class SafetyDecision(Enum):
    """Moderation outcome for a comment.

    HELD keeps the comment hidden until a human reviews it.
    REJECTED is only produced by an explicit hard-stop policy tier
    or by a reviewer.
    """
    APPROVED = "APPROVED"
    HELD = "HELD"
    REJECTED = "REJECTED"


class HumanLabel(Enum):
    """Reviewer ground truth, used for classifier-quality tracking."""
    TRUE_POSITIVE = "True_Positive"
    FALSE_POSITIVE = "False_Positive"
    TRUE_NEGATIVE = "True_Negative"
    FALSE_NEGATIVE = "False_Negative"


class HumanReviewedStatus(Enum):
    """Curation status for training-set selection."""
    PENDING = "pending"
    VERIFIED_SAFE = "verified_safe"
    VERIFIED_RISK = "verified_risk"
    CORRECTED = "corrected"
