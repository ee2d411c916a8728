"""Append-only store of safety assessments plus the moderation pointer.

Every pipeline run inserts a new assessment row; nothing that explains a
decision is ever updated. The per-comment moderation pointer is a
denormalized cache of the latest decision. It is written after the
assessment in a separate statement and can always be rebuilt from the
assessment table with reconcile_pointer().
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2.extras import Json

from riskguard.shared.database import (
    BaseRepository,
    ConnectionManager,
    NotFoundError,
    RepositoryError,
)
from riskguard.shared.models import (
    HumanLabel,
    HumanReviewedStatus,
    ModerationPointer,
    RagContextItem,
    RiskLevel,
    SafetyAssessment,
    SafetyAssessmentDraft,
    SafetyDecision,
)
from riskguard.shared.utils import hash_pii

logger = logging.getLogger(__name__)


class ModerationPointerRepository(BaseRepository[ModerationPointer]):
    """Latest decision per comment (comment_moderation)."""

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__(connection_manager, "comment_moderation", key_column="comment_id")

    def pointer_from_row(self, row: Dict[str, Any]) -> ModerationPointer:
        return self._row_to_entity(row)

    def _row_to_entity(self, row: Dict[str, Any]) -> ModerationPointer:
        risk_level = row.get("risk_level")
        confidence = row.get("confidence")
        return ModerationPointer(
            comment_id=str(row["comment_id"]),
            assessment_id=str(row["assessment_id"]),
            decision=SafetyDecision(row["decision"]),
            risk_level=RiskLevel.parse(risk_level) if risk_level else None,
            confidence=float(confidence) if confidence is not None else None,
            updated_at=row["updated_at"],
        )

    def _entity_to_params(self, entity: ModerationPointer) -> Dict[str, Any]:
        return {
            "comment_id": entity.comment_id,
            "assessment_id": entity.assessment_id,
            "decision": entity.decision.value,
            "risk_level": entity.risk_level.value if entity.risk_level else None,
            "confidence": entity.confidence,
            "updated_at": entity.updated_at,
        }

    def set_decision(self, comment_id: str, decision: SafetyDecision) -> bool:
        """Overwrite the decision of an existing pointer.

        Returns:
            True if a pointer exists for the comment
        """
        now = datetime.utcnow()
        if self.uses_memory:
            pointer = self._memory.get(comment_id)
            if pointer is None:
                return False
            self._memory[comment_id] = ModerationPointer(
                comment_id=pointer.comment_id,
                assessment_id=pointer.assessment_id,
                decision=decision,
                risk_level=pointer.risk_level,
                confidence=pointer.confidence,
                updated_at=now,
            )
            return True

        affected = self._execute(
            f"UPDATE {self.table_name} SET decision = %s, updated_at = %s WHERE comment_id = %s",
            (decision.value, now, comment_id)
        )
        return affected > 0


class AssessmentRepository(BaseRepository[SafetyAssessment]):
    """Repository for safety assessments and their moderation pointers."""

    def __init__(
        self,
        connection_manager: Optional[ConnectionManager] = None,
        pointers: Optional[ModerationPointerRepository] = None,
    ):
        """Initialize repository.

        Args:
            connection_manager: Database connection manager, or None for memory
            pointers: Pointer store (shared with the comment repository)
        """
        super().__init__(connection_manager, "safety_assessments")
        self.pointers = pointers or ModerationPointerRepository(connection_manager)

    def _row_to_entity(self, row: Dict[str, Any]) -> SafetyAssessment:
        ai_risk_level = row.get("ai_risk_level")
        confidence = row.get("confidence")
        human_label = row.get("human_label")
        comment_id = row.get("comment_id")
        return SafetyAssessment(
            id=str(row["id"]),
            comment_id=str(comment_id) if comment_id is not None else None,
            created_at=row["created_at"],
            decision=SafetyDecision(row["decision"]),
            layer1_hit=row.get("layer1_hit"),
            layer2_context=[
                RagContextItem.from_dict(item) for item in (row.get("layer2_context") or [])
            ],
            provider=row["provider"],
            model_id=row["model_id"],
            ai_risk_level=RiskLevel.parse(ai_risk_level) if ai_risk_level else None,
            confidence=float(confidence) if confidence is not None else None,
            ai_reason=row.get("ai_reason"),
            latency_ms=row.get("latency_ms"),
            redacted_input=row.get("redacted_input"),
            human_label=HumanLabel(human_label) if human_label else None,
            human_reviewed_status=HumanReviewedStatus(
                row.get("human_reviewed_status") or HumanReviewedStatus.PENDING.value
            ),
            reviewed_by=row.get("reviewed_by"),
            reviewed_at=row.get("reviewed_at"),
        )

    def _entity_to_params(self, entity: SafetyAssessment) -> Dict[str, Any]:
        params = entity.to_dict()
        params["created_at"] = entity.created_at
        params["reviewed_at"] = entity.reviewed_at
        if not self.uses_memory:
            params["layer2_context"] = Json(params["layer2_context"])
        return params

    # Writes from the pipeline

    def insert_assessment(self, comment_id: str, draft: SafetyAssessmentDraft) -> Optional[str]:
        """Append one assessment row.

        Never raises: a failed write is logged and reported as None so the
        caller can apply its own fail-closed policy.

        Returns:
            New assessment id, or None if the insert failed
        """
        assessment = SafetyAssessment.from_draft(str(uuid.uuid4()), comment_id, draft)

        try:
            stored = self.insert(assessment)
        except RepositoryError as e:
            logger.error(
                "ASSESSMENT_INSERT_FAILED",
                extra={
                    "comment_id": comment_id,
                    "decision": draft.decision.value,
                    "error": str(e),
                }
            )
            return None

        logger.info(
            "ASSESSMENT_INSERTED",
            extra={
                "assessment_id": stored.id,
                "comment_id": comment_id,
                "decision": stored.decision.value,
                "layer1_hit": stored.layer1_hit is not None,
            }
        )
        return stored.id

    def update_moderation_pointer(self, comment_id: str, pointer: ModerationPointer) -> bool:
        """Best-effort upsert of the comment's pointer.

        Returns:
            True on success, False if the write failed
        """
        try:
            self.pointers.save(pointer)
        except (RepositoryError, psycopg2.Error) as e:
            logger.warning(
                "MODERATION_POINTER_UPDATE_FAILED",
                extra={
                    "comment_id": comment_id,
                    "assessment_id": pointer.assessment_id,
                    "error": str(e),
                    "action": "reconcile_pointer",
                }
            )
            return False
        return True

    def persist(self, comment_id: str, draft: SafetyAssessmentDraft) -> Optional[str]:
        """Insert the assessment, then move the pointer to it.

        A pointer failure leaves the assessment in place and still returns
        its id.

        Returns:
            Assessment id, or None if the assessment insert failed
        """
        assessment_id = self.insert_assessment(comment_id, draft)
        if assessment_id is None:
            return None

        self.update_moderation_pointer(
            comment_id,
            ModerationPointer(
                comment_id=comment_id,
                assessment_id=assessment_id,
                decision=draft.decision,
                risk_level=draft.ai_risk_level,
                confidence=draft.confidence,
            ),
        )
        return assessment_id

    # Reads

    def get_assessment(self, assessment_id: str) -> SafetyAssessment:
        """Load one assessment.

        Raises:
            NotFoundError: If no assessment has this id
        """
        assessment = self.find_by_id(assessment_id)
        if assessment is None:
            raise NotFoundError(f"Assessment {assessment_id} not found")
        return assessment

    def get_reasons(self, assessment_ids: List[str]) -> Dict[str, Dict[str, Optional[str]]]:
        """Batch-fetch layer1_hit and ai_reason in one round trip.

        Returns:
            {assessment_id: {"layer1_hit": ..., "ai_reason": ...}}
        """
        if not assessment_ids:
            return {}

        if self.uses_memory:
            return {
                a.id: {"layer1_hit": a.layer1_hit, "ai_reason": a.ai_reason}
                for a in self.find_by_ids(assessment_ids)
            }

        rows = self._fetch_all(
            f"SELECT id, layer1_hit, ai_reason FROM {self.table_name} WHERE id = ANY(%s)",
            (list(assessment_ids),)
        )
        return {
            str(row["id"]): {"layer1_hit": row["layer1_hit"], "ai_reason": row["ai_reason"]}
            for row in rows
        }

    def latest_for_comment(self, comment_id: str) -> Optional[SafetyAssessment]:
        if self.uses_memory:
            candidates = [a for a in self._memory.values() if a.comment_id == comment_id]
            if not candidates:
                return None
            # Insertion order breaks timestamp ties
            return sorted(candidates, key=lambda a: a.created_at)[-1]

        row = self._fetch_one(
            f"SELECT * FROM {self.table_name} WHERE comment_id = %s "
            "ORDER BY created_at DESC LIMIT 1",
            (comment_id,)
        )
        return self._row_to_entity(row) if row else None

    def list_for_comment(self, comment_id: str) -> List[SafetyAssessment]:
        """Full assessment history for a comment, newest first."""
        if self.uses_memory:
            return sorted(
                (a for a in self._memory.values() if a.comment_id == comment_id),
                key=lambda a: a.created_at,
                reverse=True,
            )

        rows = self._fetch_all(
            f"SELECT * FROM {self.table_name} WHERE comment_id = %s ORDER BY created_at DESC",
            (comment_id,)
        )
        return [self._row_to_entity(row) for row in rows]

    # Pointer maintenance

    def get_pointer(self, comment_id: str) -> Optional[ModerationPointer]:
        return self.pointers.find_by_id(comment_id)

    def set_pointer_decision(self, comment_id: str, decision: SafetyDecision) -> bool:
        """Record a reviewer decision on the pointer.

        Rebuilds a missing pointer from the assessment history first.

        Returns:
            False if the comment has no pointer and no assessments
        """
        if self.pointers.set_decision(comment_id, decision):
            return True
        if self.reconcile_pointer(comment_id) is None:
            return False
        return self.pointers.set_decision(comment_id, decision)

    def reconcile_pointer(self, comment_id: str) -> Optional[ModerationPointer]:
        """Rebuild the pointer from the newest assessment.

        Returns:
            The rebuilt pointer, or None if the comment has no assessments
        """
        latest = self.latest_for_comment(comment_id)
        if latest is None:
            return None

        pointer = ModerationPointer.from_assessment(latest)
        self.pointers.save(pointer)

        logger.info(
            "MODERATION_POINTER_RECONCILED",
            extra={
                "comment_id": comment_id,
                "assessment_id": latest.id,
                "decision": latest.decision.value,
            }
        )
        return pointer

    # Review fields

    def set_human_label(
        self,
        assessment_id: str,
        label: HumanLabel,
        reviewer_id: str,
    ) -> SafetyAssessment:
        """Record a reviewer's ground-truth label.

        Raises:
            NotFoundError: If the assessment does not exist
        """
        return self._update_review(
            assessment_id,
            reviewer_id,
            human_label=label,
        )

    def set_human_reviewed_status(
        self,
        assessment_id: str,
        status: HumanReviewedStatus,
        reviewer_id: str,
    ) -> SafetyAssessment:
        """Record the curation status used for training selection.

        Raises:
            NotFoundError: If the assessment does not exist
        """
        return self._update_review(
            assessment_id,
            reviewer_id,
            human_reviewed_status=status,
        )

    def _update_review(self, assessment_id: str, reviewer_id: str, **fields: Any) -> SafetyAssessment:
        current = self.get_assessment(assessment_id)
        updated = current.with_review(
            reviewed_by=reviewer_id,
            reviewed_at=datetime.utcnow(),
            **fields,
        )

        if self.uses_memory:
            self._memory[assessment_id] = updated
        else:
            params = {
                name: (value.value if hasattr(value, "value") else value)
                for name, value in fields.items()
            }
            params["reviewed_by"] = updated.reviewed_by
            params["reviewed_at"] = updated.reviewed_at
            assignments = ", ".join(f"{name} = %s" for name in params)
            self._execute(
                f"UPDATE {self.table_name} SET {assignments} WHERE id = %s",
                list(params.values()) + [assessment_id]
            )

        logger.info(
            "ASSESSMENT_REVIEW_RECORDED",
            extra={
                "assessment_id": assessment_id,
                "fields": sorted(fields),
                "reviewer_hash": hash_pii(reviewer_id),
            }
        )
        return updated
