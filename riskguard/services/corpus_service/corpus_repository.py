"""Corpus item storage.

Corpus items are the slang and case examples Layer 2 retrieves. Only
active items are ever handed to the classifier.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from riskguard.shared.database import BaseRepository, ConnectionManager

logger = logging.getLogger(__name__)


class CorpusKind(Enum):
    """What a corpus item teaches the classifier."""
    SLANG = "slang"     # Idioms and hyperbole with their real meaning
    CASE = "case"       # Worked examples of risky or safe comments

    @property
    def embedding_target_type(self) -> str:
        """Target type used by the embedding indexer."""
        return f"safety_{self.value}"


class CorpusStatus(Enum):
    """Lifecycle status. Only ACTIVE items are retrievable."""
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


@dataclass(frozen=True)
class CorpusItem:
    """A curated reference snippet."""
    id: str
    kind: CorpusKind
    label: str
    content: str
    status: CorpusStatus = CorpusStatus.DRAFT
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_by: Optional[str] = None
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        if not self.label or not self.label.strip():
            raise ValueError("Corpus item label must not be empty")
        if not self.content or not self.content.strip():
            raise ValueError("Corpus item content must not be empty")

    @property
    def is_active(self) -> bool:
        return self.status is CorpusStatus.ACTIVE

    def revised(self, user_id: str, **changes: Any) -> "CorpusItem":
        """Return a copy with changes applied and the audit stamp refreshed."""
        return replace(self, updated_by=user_id, updated_at=datetime.utcnow(), **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "label": self.label,
            "content": self.content,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat(),
        }


class CorpusRepository(BaseRepository[CorpusItem]):
    """Repository for safety corpus items."""

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__(connection_manager, "safety_corpus_items")

    def _row_to_entity(self, row: Dict[str, Any]) -> CorpusItem:
        return CorpusItem(
            id=str(row["id"]),
            kind=CorpusKind(row["kind"]),
            status=CorpusStatus(row["status"]),
            label=row["label"],
            content=row["content"],
            created_by=row.get("created_by"),
            created_at=row["created_at"],
            updated_by=row.get("updated_by"),
            updated_at=row["updated_at"],
        )

    def _entity_to_params(self, entity: CorpusItem) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "kind": entity.kind.value,
            "status": entity.status.value,
            "label": entity.label,
            "content": entity.content,
            "created_by": entity.created_by,
            "created_at": entity.created_at,
            "updated_by": entity.updated_by,
            "updated_at": entity.updated_at,
        }

    def search(
        self,
        kind: Optional[CorpusKind] = None,
        status: Optional[CorpusStatus] = None,
        search: Optional[str] = None,
    ) -> List[CorpusItem]:
        """List items matching the filters, most recently updated first.

        Args:
            kind: Restrict to one kind
            status: Restrict to one status
            search: Case-insensitive substring over label and content

        Returns:
            Matching items
        """
        if self.uses_memory:
            needle = search.casefold() if search else None
            items = [
                item for item in self._memory.values()
                if (kind is None or item.kind is kind)
                and (status is None or item.status is status)
                and (
                    needle is None
                    or needle in item.label.casefold()
                    or needle in item.content.casefold()
                )
            ]
            return sorted(items, key=lambda i: i.updated_at, reverse=True)

        clauses = []
        params: List[Any] = []
        if kind is not None:
            clauses.append("kind = %s")
            params.append(kind.value)
        if status is not None:
            clauses.append("status = %s")
            params.append(status.value)
        if search:
            clauses.append("(label ILIKE %s OR content ILIKE %s)")
            pattern = f"%{search}%"
            params.extend([pattern, pattern])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetch_all(
            f"SELECT * FROM {self.table_name} {where} ORDER BY updated_at DESC",
            params
        )
        return [self._row_to_entity(row) for row in rows]

    def find_active_by_ids(self, item_ids: List[str]) -> Dict[str, CorpusItem]:
        """Batch-load the subset of ``item_ids`` that is currently active.

        Returns:
            Active items keyed by id
        """
        return {
            item.id: item
            for item in self.find_by_ids(item_ids)
            if item.is_active
        }
