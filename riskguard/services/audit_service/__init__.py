"""Audit Service: append-only safety assessments and comment moderation state.

Components:
- assessment_repository.py: SafetyAssessment rows and the rebuildable
  moderation pointer
- comment_repository.py: comment visibility, deletion and the held listing
"""

from .assessment_repository import AssessmentRepository, ModerationPointerRepository
from .comment_repository import CommentRecord, CommentRepository, QueueFilters, TargetType

__all__ = [
    "AssessmentRepository",
    "ModerationPointerRepository",
    "CommentRecord",
    "CommentRepository",
    "QueueFilters",
    "TargetType",
]
