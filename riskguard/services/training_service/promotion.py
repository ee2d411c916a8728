"""Training promotion ETL.

Turns a reviewed assessment into a fine-tuning example. The input side
is rebuilt from the redacted text and Layer 2 context stored on the
assessment, through the same prompt builder the live classifier uses, so
the model is trained on exactly what it saw. Rejected (deleted) and
edited comments promote the same way. The output side is the
reviewer's corrected label.
"""
import json
import logging
import uuid
from typing import Any, List, Optional

from riskguard.shared.database import DuplicateError, NotFoundError
from riskguard.shared.utils import hash_pii
from riskguard.services.audit_service import AssessmentRepository
from riskguard.services.safety_service.config import ConfigurationError
from riskguard.services.safety_service.prompt import (
    SchemaValidationError,
    build_prompt_messages,
    validate_output,
)
from riskguard.services.safety_service.settings_repository import SettingsRepository
from .dataset_repository import TrainingDatasetRepository, TrainingDatasetRow

logger = logging.getLogger(__name__)


class TrainingPromoter:
    """Promotes reviewed assessments into the active training batch."""

    def __init__(
        self,
        assessments: AssessmentRepository,
        settings_repository: SettingsRepository,
        datasets: Optional[TrainingDatasetRepository] = None,
    ):
        self.assessments = assessments
        self.settings_repository = settings_repository
        self.datasets = datasets or TrainingDatasetRepository()

    def promote(
        self,
        assessment_id: str,
        reviewer_id: str,
        corrected_output_json: Any,
    ) -> TrainingDatasetRow:
        """Promote one assessment into the active batch.

        Promoting the same assessment twice into one batch returns the
        row written the first time.

        Args:
            assessment_id: Source assessment
            reviewer_id: Acting reviewer
            corrected_output_json: Classifier-shaped label, as a dict or a
                JSON string

        Returns:
            The stored (or pre-existing) TrainingDatasetRow

        Raises:
            SchemaValidationError: If the corrected output is missing or invalid
            ConfigurationError: If no training batch is active
            NotFoundError: If the assessment is unknown or has no stored input
        """
        if corrected_output_json is None:
            raise SchemaValidationError("Corrected output is required")
        if isinstance(corrected_output_json, str):
            try:
                corrected_output_json = json.loads(corrected_output_json)
            except json.JSONDecodeError as e:
                raise SchemaValidationError(f"Corrected output is not valid JSON: {e}") from e
        output = validate_output(corrected_output_json)

        settings = self.settings_repository.load()
        batch = (settings.training_active_batch or "").strip()
        if not batch:
            raise ConfigurationError("No active training batch configured")

        assessment = self.assessments.get_assessment(assessment_id)

        if assessment.redacted_input is None:
            raise NotFoundError(
                f"Assessment {assessment_id} has no stored classifier input"
            )

        messages = build_prompt_messages(assessment.redacted_input, assessment.layer2_context)

        row = TrainingDatasetRow(
            id=str(uuid.uuid4()),
            input_messages=messages,
            output_json=output.to_dict(),
            source_assessment_id=assessment_id,
            dataset_batch=batch,
            created_by=reviewer_id,
        )

        try:
            stored = self.datasets.insert(row)
        except DuplicateError:
            existing = self.datasets.find_by_source(assessment_id, batch)
            if existing is None:
                raise
            logger.info(
                "TRAINING_PROMOTION_ALREADY_EXISTS",
                extra={"assessment_id": assessment_id, "dataset_batch": batch}
            )
            return existing

        logger.info(
            "TRAINING_ROW_PROMOTED",
            extra={
                "row_id": stored.id,
                "assessment_id": assessment_id,
                "dataset_batch": batch,
                "risk_level": output.risk_level.value,
                "reviewer_hash": hash_pii(reviewer_id),
            }
        )
        return stored

    def list_rows(self, dataset_batch: str) -> List[TrainingDatasetRow]:
        return self.datasets.list_batch(dataset_batch)

    def export_jsonl(self, dataset_batch: str) -> str:
        """Render a batch as chat fine-tuning JSONL.

        Each line holds the stored prompt messages followed by the label
        as the assistant turn.
        """
        lines = []
        for row in self.list_rows(dataset_batch):
            messages = list(row.input_messages) + [{
                "role": "assistant",
                "content": json.dumps(row.output_json, ensure_ascii=False),
            }]
            lines.append(json.dumps({"messages": messages}, ensure_ascii=False))

        logger.info(
            "TRAINING_BATCH_EXPORTED",
            extra={"dataset_batch": dataset_batch, "rows": len(lines)}
        )
        return "\n".join(lines) + ("\n" if lines else "")
