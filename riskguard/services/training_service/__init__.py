"""Training Service: reviewed assessments into fine-tuning data."""

from .dataset_repository import TrainingDatasetRepository, TrainingDatasetRow
from .promotion import TrainingPromoter

__all__ = [
    "TrainingDatasetRepository",
    "TrainingDatasetRow",
    "TrainingPromoter",
]
