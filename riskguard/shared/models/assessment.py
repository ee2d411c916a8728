"""Safety assessment domain models.

An assessment is an audit record: the fields that explain a decision
are frozen at insert time. Only the human-review fields may be filled
in afterwards.
"""
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .risk import HumanLabel, HumanReviewedStatus, RiskLevel, SafetyDecision


# Fields a reviewer may set after insert
REVIEW_FIELDS = frozenset({
    "human_label",
    "human_reviewed_status",
    "reviewed_by",
    "reviewed_at",
})


@dataclass(frozen=True)
class RagContextItem:
    """A corpus snippet retrieved for Layer 2, in rank order."""
    label: str
    content: str
    score: float
    kind: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "content": self.content,
            "score": self.score,
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RagContextItem":
        # Older rows stored the snippet under "text"
        return cls(
            label=data.get("label", ""),
            content=data.get("content", data.get("text", "")),
            score=float(data.get("score", 0.0)),
            kind=data.get("kind", ""),
        )


@dataclass(frozen=True)
class SafetyAssessmentDraft:
    """Decision-relevant output of one pipeline run, before persistence."""
    decision: SafetyDecision
    layer1_hit: Optional[str]
    layer2_context: List[RagContextItem]
    provider: str
    model_id: str
    ai_risk_level: RiskLevel
    confidence: float
    ai_reason: str
    latency_ms: Optional[int] = None
    redacted_input: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.decision, SafetyDecision):
            raise ValueError(f"Unknown decision: {self.decision!r}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be 0.0-1.0, got {self.confidence}")


@dataclass(frozen=True)
class SafetyAssessment:
    """One evaluation of one comment.

    Outlives the comment: rejecting a comment deletes its content but
    never its assessments.
    """
    id: str
    comment_id: str
    created_at: datetime
    decision: SafetyDecision
    layer1_hit: Optional[str]
    layer2_context: List[RagContextItem]
    provider: str
    model_id: str
    ai_risk_level: Optional[RiskLevel]
    confidence: Optional[float]
    ai_reason: Optional[str]
    latency_ms: Optional[int] = None
    # Classifier input as the model saw it; training rows are rebuilt from it
    redacted_input: Optional[str] = None
    human_label: Optional[HumanLabel] = None
    human_reviewed_status: HumanReviewedStatus = HumanReviewedStatus.PENDING
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be 0.0-1.0, got {self.confidence}")

    @classmethod
    def from_draft(
        cls,
        assessment_id: str,
        comment_id: str,
        draft: SafetyAssessmentDraft,
        created_at: Optional[datetime] = None,
    ) -> "SafetyAssessment":
        return cls(
            id=assessment_id,
            comment_id=comment_id,
            created_at=created_at or datetime.utcnow(),
            decision=draft.decision,
            layer1_hit=draft.layer1_hit,
            layer2_context=list(draft.layer2_context),
            provider=draft.provider,
            model_id=draft.model_id,
            ai_risk_level=draft.ai_risk_level,
            confidence=draft.confidence,
            ai_reason=draft.ai_reason,
            latency_ms=draft.latency_ms,
            redacted_input=draft.redacted_input,
        )

    def with_review(self, **changes: Any) -> "SafetyAssessment":
        """Return a copy with review fields updated.

        Raises:
            ValueError: If any non-review field is included
        """
        illegal = set(changes) - REVIEW_FIELDS
        if illegal:
            raise ValueError(
                f"Assessment fields are immutable after insert: {sorted(illegal)}"
            )
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "comment_id": self.comment_id,
            "created_at": self.created_at.isoformat(),
            "decision": self.decision.value,
            "layer1_hit": self.layer1_hit,
            "layer2_context": [item.to_dict() for item in self.layer2_context],
            "provider": self.provider,
            "model_id": self.model_id,
            "ai_risk_level": self.ai_risk_level.value if self.ai_risk_level else None,
            "confidence": self.confidence,
            "ai_reason": self.ai_reason,
            "latency_ms": self.latency_ms,
            "redacted_input": self.redacted_input,
            "human_label": self.human_label.value if self.human_label else None,
            "human_reviewed_status": self.human_reviewed_status.value,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
        }


@dataclass(frozen=True)
class ModerationPointer:
    """Denormalized latest decision for a comment.

    A cache over the assessment table; rebuild it from the newest
    assessment whenever it is missing or stale.
    """
    comment_id: str
    assessment_id: str
    decision: SafetyDecision
    risk_level: Optional[RiskLevel]
    confidence: Optional[float]
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_assessment(cls, assessment: SafetyAssessment) -> "ModerationPointer":
        return cls(
            comment_id=assessment.comment_id,
            assessment_id=assessment.id,
            decision=assessment.decision,
            risk_level=assessment.ai_risk_level,
            confidence=assessment.confidence,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "comment_id": self.comment_id,
            "assessment_id": self.assessment_id,
            "decision": self.decision.value,
            "risk_level": self.risk_level.value if self.risk_level else None,
            "confidence": self.confidence,
        }
