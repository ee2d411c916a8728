"""Reviewer actions on held comments and their assessments.

Approve and reject change what the public sees. Label and reviewed
status only annotate an assessment; they never touch its decision.
"""
import logging

from riskguard.shared.database import NotFoundError
from riskguard.shared.models import (
    HumanLabel,
    HumanReviewedStatus,
    SafetyAssessment,
    SafetyDecision,
)
from riskguard.shared.utils import hash_pii
from riskguard.services.audit_service import AssessmentRepository, CommentRepository

logger = logging.getLogger(__name__)


class ReviewActions:
    """Write side of the moderation workflow."""

    def __init__(self, comments: CommentRepository, assessments: AssessmentRepository):
        self.comments = comments
        self.assessments = assessments

    def approve(self, comment_id: str, reviewer_id: str = "") -> None:
        """Publish a held comment. Safe to repeat.

        Raises:
            NotFoundError: If the comment does not exist
        """
        if not self.comments.set_approved(comment_id, True):
            raise NotFoundError(f"Comment {comment_id} not found")

        pointer_updated = self.assessments.set_pointer_decision(comment_id, SafetyDecision.APPROVED)

        logger.info(
            "COMMENT_APPROVED",
            extra={
                "comment_id": comment_id,
                "pointer_updated": pointer_updated,
                "reviewer_hash": hash_pii(reviewer_id) if reviewer_id else None,
            }
        )

    def reject(self, comment_id: str, reviewer_id: str = "") -> None:
        """Reject a comment and delete its content.

        The pointer is marked REJECTED before the delete; assessment rows
        are kept.

        Raises:
            NotFoundError: If the comment does not exist
        """
        if self.comments.find_by_id(comment_id) is None:
            raise NotFoundError(f"Comment {comment_id} not found")

        self.assessments.set_pointer_decision(comment_id, SafetyDecision.REJECTED)
        self.comments.delete(comment_id)

        logger.info(
            "COMMENT_REJECTED",
            extra={
                "comment_id": comment_id,
                "reviewer_hash": hash_pii(reviewer_id) if reviewer_id else None,
            }
        )

    def label(self, assessment_id: str, label: HumanLabel, reviewer_id: str) -> SafetyAssessment:
        """Record ground truth for classifier-quality tracking.

        Raises:
            NotFoundError: If the assessment does not exist
        """
        return self.assessments.set_human_label(assessment_id, label, reviewer_id)

    def mark_reviewed_status(
        self,
        assessment_id: str,
        status: HumanReviewedStatus,
        reviewer_id: str,
    ) -> SafetyAssessment:
        """Record curation status for training selection.

        Raises:
            NotFoundError: If the assessment does not exist
        """
        return self.assessments.set_human_reviewed_status(assessment_id, status, reviewer_id)
