"""Storage for curated fine-tuning rows (safety_training_datasets)."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from psycopg2.extras import Json

from riskguard.shared.database import BaseRepository, ConnectionManager, DuplicateError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainingDatasetRow:
    """One supervised example: the prompt the model saw and the label.

    Unique per (source_assessment_id, dataset_batch).
    """
    id: str
    input_messages: List[Dict[str, str]]
    output_json: Dict[str, Any]
    source_assessment_id: Optional[str]
    dataset_batch: str
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        if not self.dataset_batch:
            raise ValueError("dataset_batch must not be empty")
        if not isinstance(self.input_messages, list) or not self.input_messages:
            raise ValueError("input_messages must be a non-empty list")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "input_messages": self.input_messages,
            "output_json": self.output_json,
            "source_assessment_id": self.source_assessment_id,
            "dataset_batch": self.dataset_batch,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
        }


class TrainingDatasetRepository(BaseRepository[TrainingDatasetRow]):
    """Repository for training dataset rows."""

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__(connection_manager, "safety_training_datasets")

    def _row_to_entity(self, row: Dict[str, Any]) -> TrainingDatasetRow:
        source = row.get("source_assessment_id")
        return TrainingDatasetRow(
            id=str(row["id"]),
            input_messages=row["input_messages"],
            output_json=row["output_json"],
            source_assessment_id=str(source) if source is not None else None,
            dataset_batch=row["dataset_batch"],
            created_by=row.get("created_by"),
            created_at=row["created_at"],
        )

    def _entity_to_params(self, entity: TrainingDatasetRow) -> Dict[str, Any]:
        params = {
            "id": entity.id,
            "input_messages": entity.input_messages,
            "output_json": entity.output_json,
            "source_assessment_id": entity.source_assessment_id,
            "dataset_batch": entity.dataset_batch,
            "created_by": entity.created_by,
            "created_at": entity.created_at,
        }
        if not self.uses_memory:
            params["input_messages"] = Json(entity.input_messages)
            params["output_json"] = Json(entity.output_json)
        return params

    def _check_memory_constraints(self, entity: TrainingDatasetRow) -> None:
        existing = self.find_by_source(entity.source_assessment_id, entity.dataset_batch)
        if existing is not None:
            raise DuplicateError(
                f"{self.table_name}: ({entity.source_assessment_id}, {entity.dataset_batch}) already exists"
            )

    def find_by_source(
        self,
        source_assessment_id: Optional[str],
        dataset_batch: str,
    ) -> Optional[TrainingDatasetRow]:
        if source_assessment_id is None:
            return None

        if self.uses_memory:
            for row in self._memory.values():
                if (row.source_assessment_id == source_assessment_id
                        and row.dataset_batch == dataset_batch):
                    return row
            return None

        row = self._fetch_one(
            f"SELECT * FROM {self.table_name} "
            "WHERE source_assessment_id = %s AND dataset_batch = %s",
            (source_assessment_id, dataset_batch)
        )
        return self._row_to_entity(row) if row else None

    def list_batch(self, dataset_batch: str) -> List[TrainingDatasetRow]:
        """All rows of one batch, oldest first."""
        if self.uses_memory:
            return sorted(
                (row for row in self._memory.values() if row.dataset_batch == dataset_batch),
                key=lambda r: r.created_at,
            )

        rows = self._fetch_all(
            f"SELECT * FROM {self.table_name} WHERE dataset_batch = %s ORDER BY created_at ASC",
            (dataset_batch,)
        )
        return [self._row_to_entity(row) for row in rows]
