"""Persistence for the engine settings singleton (safety_settings, id=1)."""
import logging
from typing import Any, Dict, Optional

from psycopg2.extras import Json

from riskguard.shared.database import BaseRepository, ConnectionManager
from .config import EngineSettings, PolicyTier

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1

EDITABLE_FIELDS = frozenset({
    "is_enabled",
    "model_id",
    "timeout_ms",
    "risk_threshold",
    "training_active_batch",
    "held_message",
    "rejected_message",
    "layer1_blocklist",
    "decision_tiers",
})


class SettingsRepository(BaseRepository[EngineSettings]):
    """Loads and updates the engine settings snapshot."""

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__(connection_manager, "safety_settings")

    def _row_to_entity(self, row: Dict[str, Any]) -> EngineSettings:
        return EngineSettings.from_dict(row)

    def _entity_to_params(self, entity: EngineSettings) -> Dict[str, Any]:
        data = entity.to_dict()
        params = {"id": SETTINGS_ROW_ID}
        params.update(data)
        if not self.uses_memory:
            params["layer1_blocklist"] = Json(data["layer1_blocklist"])
            params["decision_tiers"] = Json(data["decision_tiers"])
        return params

    def load(self) -> EngineSettings:
        """Load the current snapshot, or defaults if the row is absent."""
        settings = self.find_by_id(SETTINGS_ROW_ID)
        if settings is None:
            logger.info("SAFETY_SETTINGS_DEFAULTED", extra={"table_name": self.table_name})
            return EngineSettings()
        return settings

    def find_by_id(self, entity_id: Any) -> Optional[EngineSettings]:
        if self.uses_memory:
            return self._memory.get(str(entity_id))
        return super().find_by_id(entity_id)

    def update(self, **changes: Any) -> EngineSettings:
        """Apply admin edits and bump the version.

        Args:
            **changes: Editable fields; decision_tiers may be PolicyTier
                instances or their dict form

        Returns:
            The new snapshot

        Raises:
            ValueError: On unknown fields or out-of-range values
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown settings fields: {sorted(unknown)}")

        if "decision_tiers" in changes:
            changes["decision_tiers"] = tuple(
                tier if isinstance(tier, PolicyTier) else PolicyTier.from_dict(tier)
                for tier in changes["decision_tiers"]
            )
        if "layer1_blocklist" in changes:
            changes["layer1_blocklist"] = [
                term.strip() for term in changes["layer1_blocklist"] if term and term.strip()
            ]

        current = self.load()
        updated = self.save(current.updated(**changes))

        logger.info(
            "SAFETY_SETTINGS_UPDATED",
            extra={
                "fields": sorted(changes),
                "version": updated.version,
                "is_enabled": updated.is_enabled,
            }
        )
        return updated
