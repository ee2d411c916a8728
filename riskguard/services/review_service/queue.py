"""Moderation review queue.

Lists HELD comments for reviewers. The page itself comes from one joined
read (comments + moderation pointer); the explanation fields live on the
assessment rows and are fetched for the whole page in a second, batched
read.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from riskguard.shared.models import RiskLevel, SafetyAssessment
from riskguard.services.audit_service import (
    AssessmentRepository,
    CommentRepository,
    QueueFilters,
    TargetType,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
PREVIEW_LENGTH = 200
ANONYMOUS_AUTHOR = "Anonymous"


@dataclass(frozen=True)
class QueueItem:
    """One held comment as shown in the queue."""
    comment_id: str
    assessment_id: str
    content_preview: str
    author_name: str
    target_type: TargetType
    target_id: str
    created_at: datetime
    risk_level: Optional[RiskLevel]
    confidence: Optional[float]
    layer1_hit: Optional[str] = None
    ai_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "comment_id": self.comment_id,
            "assessment_id": self.assessment_id,
            "content_preview": self.content_preview,
            "author_name": self.author_name,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "created_at": self.created_at.isoformat(),
            "risk_level": self.risk_level.value if self.risk_level else None,
            "confidence": self.confidence,
            "layer1_hit": self.layer1_hit,
            "ai_reason": self.ai_reason,
        }


@dataclass(frozen=True)
class QueuePage:
    items: List[QueueItem] = field(default_factory=list)
    total: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"items": [item.to_dict() for item in self.items], "total": self.total}


def truncate_preview(content: str, length: int = PREVIEW_LENGTH) -> str:
    return (content or "")[:length]


class ReviewQueue:
    """Read side of the moderation workflow."""

    def __init__(self, comments: CommentRepository, assessments: AssessmentRepository):
        self.comments = comments
        self.assessments = assessments

    def list_held(
        self,
        filters: Optional[QueueFilters] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> QueuePage:
        """List held comments, newest first.

        Args:
            filters: Optional listing filters
            limit: Page size, clamped to 1-100
            offset: Rows to skip

        Returns:
            QueuePage with the page items and the total matching count
        """
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)

        rows, total = self.comments.find_held(filters or QueueFilters(), limit, offset)
        if not rows:
            return QueuePage(items=[], total=total)

        reasons = self.assessments.get_reasons([pointer.assessment_id for _, pointer in rows])

        items = []
        for comment, pointer in rows:
            reason = reasons.get(pointer.assessment_id, {})
            items.append(QueueItem(
                comment_id=comment.id,
                assessment_id=pointer.assessment_id,
                content_preview=truncate_preview(comment.content),
                author_name=comment.author_name or ANONYMOUS_AUTHOR,
                target_type=comment.target_type,
                target_id=comment.target_id,
                created_at=comment.created_at,
                risk_level=pointer.risk_level,
                confidence=pointer.confidence,
                layer1_hit=reason.get("layer1_hit"),
                ai_reason=reason.get("ai_reason"),
            ))

        logger.info(
            "REVIEW_QUEUE_LISTED",
            extra={"returned": len(items), "total": total, "offset": offset}
        )
        return QueuePage(items=items, total=total)

    def get_detail(self, assessment_id: str) -> SafetyAssessment:
        """Full assessment for the detail view.

        Raises:
            NotFoundError: If the assessment does not exist
        """
        return self.assessments.get_assessment(assessment_id)
