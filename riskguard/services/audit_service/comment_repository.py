"""Comment storage as seen by the safety engine.

Comments are owned by the blog; the engine reads their content, flips
visibility on approval and deletes them on rejection. The held-comment
listing joins comments with their moderation pointer.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from riskguard.shared.database import BaseRepository, ConnectionManager
from riskguard.shared.models import ModerationPointer, RiskLevel, SafetyDecision
from .assessment_repository import ModerationPointerRepository

logger = logging.getLogger(__name__)

# Pointer columns selected alongside c.* by find_held(), prefixed to avoid clashes
MODERATION_COLUMNS = ("assessment_id", "decision", "risk_level", "confidence", "updated_at")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Offset-aware UTC datetime; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TargetType(Enum):
    """What a comment is attached to."""
    POST = "post"
    GALLERY_ITEM = "gallery_item"


@dataclass(frozen=True)
class CommentRecord:
    """A user comment."""
    id: str
    content: str
    target_type: TargetType
    target_id: str
    author_name: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    is_approved: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "author_name": self.author_name,
            "created_at": self.created_at.isoformat(),
            "is_approved": self.is_approved,
        }


@dataclass(frozen=True)
class QueueFilters:
    """Optional filters over the held-comment listing."""
    risk_level: Optional[RiskLevel] = None
    confidence_min: Optional[float] = None
    confidence_max: Optional[float] = None
    target_type: Optional[TargetType] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None

    def matches(self, comment: CommentRecord, pointer: ModerationPointer) -> bool:
        if self.risk_level is not None and pointer.risk_level is not self.risk_level:
            return False
        if self.confidence_min is not None and (
            pointer.confidence is None or pointer.confidence < self.confidence_min
        ):
            return False
        if self.confidence_max is not None and (
            pointer.confidence is None or pointer.confidence > self.confidence_max
        ):
            return False
        if self.target_type is not None and comment.target_type is not self.target_type:
            return False
        created_at = as_utc(comment.created_at)
        if self.date_from is not None and created_at < as_utc(self.date_from):
            return False
        if self.date_to is not None and created_at > as_utc(self.date_to):
            return False
        if self.search and self.search.casefold() not in comment.content.casefold():
            return False
        return True


class CommentRepository(BaseRepository[CommentRecord]):
    """Repository for blog comments."""

    def __init__(
        self,
        connection_manager: Optional[ConnectionManager] = None,
        pointers: Optional[ModerationPointerRepository] = None,
    ):
        """Initialize repository.

        Args:
            connection_manager: Database connection manager, or None for memory
            pointers: Moderation pointer store joined by find_held()
        """
        super().__init__(connection_manager, "comments")
        self.pointers = pointers or ModerationPointerRepository(connection_manager)

    def _row_to_entity(self, row: Dict[str, Any]) -> CommentRecord:
        return CommentRecord(
            id=str(row["id"]),
            content=row["content"],
            target_type=TargetType(row["target_type"]),
            target_id=str(row["target_id"]),
            author_name=row.get("author_name"),
            created_at=row["created_at"],
            is_approved=bool(row.get("is_approved", False)),
        )

    def _entity_to_params(self, entity: CommentRecord) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "content": entity.content,
            "target_type": entity.target_type.value,
            "target_id": entity.target_id,
            "author_name": entity.author_name,
            "created_at": entity.created_at,
            "is_approved": entity.is_approved,
        }

    def set_approved(self, comment_id: str, approved: bool = True) -> bool:
        """Set comment visibility.

        Returns:
            True if the comment exists
        """
        if self.uses_memory:
            comment = self._memory.get(comment_id)
            if comment is None:
                return False
            self._memory[comment_id] = replace(comment, is_approved=approved)
            return True

        affected = self._execute(
            f"UPDATE {self.table_name} SET is_approved = %s WHERE id = %s",
            (approved, comment_id)
        )
        return affected > 0

    def find_held(
        self,
        filters: QueueFilters,
        limit: int,
        offset: int,
    ) -> Tuple[List[Tuple[CommentRecord, ModerationPointer]], int]:
        """Page through comments whose pointer decision is HELD.

        Newest comments first.

        Args:
            filters: Listing filters
            limit: Page size
            offset: Rows to skip

        Returns:
            (page of (comment, pointer) pairs, total matching rows)
        """
        if self.uses_memory:
            rows = []
            for comment in self._memory.values():
                pointer = self.pointers.find_by_id(comment.id)
                if pointer is None or pointer.decision is not SafetyDecision.HELD:
                    continue
                if filters.matches(comment, pointer):
                    rows.append((comment, pointer))
            rows.sort(key=lambda pair: pair[0].created_at, reverse=True)
            return rows[offset:offset + limit], len(rows)

        clauses = ["m.decision = %s"]
        params: List[Any] = [SafetyDecision.HELD.value]
        if filters.risk_level is not None:
            clauses.append("m.risk_level = %s")
            params.append(filters.risk_level.value)
        if filters.confidence_min is not None:
            clauses.append("m.confidence >= %s")
            params.append(filters.confidence_min)
        if filters.confidence_max is not None:
            clauses.append("m.confidence <= %s")
            params.append(filters.confidence_max)
        if filters.target_type is not None:
            clauses.append("c.target_type = %s")
            params.append(filters.target_type.value)
        if filters.date_from is not None:
            clauses.append("c.created_at >= %s")
            params.append(as_utc(filters.date_from))
        if filters.date_to is not None:
            clauses.append("c.created_at <= %s")
            params.append(as_utc(filters.date_to))
        if filters.search:
            clauses.append("c.content ILIKE %s")
            params.append(f"%{filters.search}%")

        moderation_columns = ", ".join(f"m.{c} AS moderation_{c}" for c in MODERATION_COLUMNS)
        rows = self._fetch_all(
            f"""
            SELECT c.*, {moderation_columns}, COUNT(*) OVER () AS total
            FROM {self.table_name} c
            JOIN {self.pointers.table_name} m ON m.comment_id = c.id
            WHERE {" AND ".join(clauses)}
            ORDER BY c.created_at DESC
            LIMIT %s OFFSET %s
            """,
            params + [limit, offset]
        )

        if not rows:
            return [], self._count_held(clauses, params) if offset else 0

        page = []
        for row in rows:
            moderation = {c: row[f"moderation_{c}"] for c in MODERATION_COLUMNS}
            moderation["comment_id"] = row["id"]
            page.append((self._row_to_entity(row), self.pointers.pointer_from_row(moderation)))
        return page, int(rows[0]["total"])

    def _count_held(self, clauses: List[str], params: List[Any]) -> int:
        # A page past the end carries no window total
        row = self._fetch_one(
            f"""
            SELECT COUNT(*) AS total
            FROM {self.table_name} c
            JOIN {self.pointers.table_name} m ON m.comment_id = c.id
            WHERE {" AND ".join(clauses)}
            """,
            params
        )
        return row["total"] if row else 0
