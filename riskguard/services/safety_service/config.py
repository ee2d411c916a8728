"""Safety engine configuration.

EngineSettings is the persisted singleton an admin edits. The pipeline
loads one immutable snapshot per run, so an update only affects runs
that start after it.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, List, Tuple

from riskguard.shared.models import RiskLevel, SafetyDecision


# Upper bound on any single classifier call, regardless of settings
MAX_LLM_TIMEOUT_MS = 1500

DEFAULT_RISK_THRESHOLD = 0.7
DEFAULT_MODEL_ID = "gpt-4o-mini"
DEFAULT_TRAINING_BATCH = "2026-01_cold_start"
PROVIDER_NAME = "openai"

# Seed list for a fresh settings row. Keep it short and high precision:
# every hit holds a comment for review.
DEFAULT_BLOCKLIST: FrozenSet[str] = frozenset({
    "kill myself",
    "end my life",
    "suicide note",
    "want to die",
})


@dataclass(frozen=True)
class PolicyTier:
    """One row of the severity policy.

    Matches when the classifier level is at least ``min_level`` and the
    confidence is at least ``min_confidence``.
    """
    min_level: RiskLevel
    decision: SafetyDecision
    min_confidence: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be 0.0-1.0, got {self.min_confidence}")

    def matches(self, level: RiskLevel, confidence: float) -> bool:
        return level.at_least(self.min_level) and confidence >= self.min_confidence

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_level": self.min_level.value,
            "decision": self.decision.value,
            "min_confidence": self.min_confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PolicyTier":
        return cls(
            min_level=RiskLevel.parse(data["min_level"]),
            decision=SafetyDecision(data["decision"]),
            min_confidence=float(data.get("min_confidence", 0.0)),
        )


# Anything Uncertain or worse goes to a human. No REJECTED tier ships
# enabled; operators add one, e.g. PolicyTier(HIGH_RISK, REJECTED, 0.95),
# ahead of this row.
DEFAULT_DECISION_TIERS: Tuple[PolicyTier, ...] = (
    PolicyTier(min_level=RiskLevel.UNCERTAIN, decision=SafetyDecision.HELD),
)


@dataclass(frozen=True)
class EngineSettings:
    """Singleton engine configuration (row id=1 of safety_settings)."""
    is_enabled: bool = False
    model_id: str = DEFAULT_MODEL_ID
    timeout_ms: int = MAX_LLM_TIMEOUT_MS
    risk_threshold: float = DEFAULT_RISK_THRESHOLD
    training_active_batch: str = DEFAULT_TRAINING_BATCH
    held_message: str = "Your comment is being reviewed."
    rejected_message: str = "Your comment could not be posted."
    layer1_blocklist: List[str] = field(default_factory=lambda: sorted(DEFAULT_BLOCKLIST))
    decision_tiers: Tuple[PolicyTier, ...] = DEFAULT_DECISION_TIERS
    version: int = 1

    def __post_init__(self):
        if not 0.0 <= self.risk_threshold <= 1.0:
            raise ValueError(f"risk_threshold must be 0.0-1.0, got {self.risk_threshold}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")

    @property
    def effective_timeout_ms(self) -> int:
        return min(self.timeout_ms, MAX_LLM_TIMEOUT_MS)

    def updated(self, **changes: Any) -> "EngineSettings":
        """Return a new snapshot with ``changes`` applied and version bumped."""
        return replace(self, version=self.version + 1, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_enabled": self.is_enabled,
            "model_id": self.model_id,
            "timeout_ms": self.timeout_ms,
            "risk_threshold": self.risk_threshold,
            "training_active_batch": self.training_active_batch,
            "held_message": self.held_message,
            "rejected_message": self.rejected_message,
            "layer1_blocklist": list(self.layer1_blocklist),
            "decision_tiers": [tier.to_dict() for tier in self.decision_tiers],
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineSettings":
        defaults = cls()
        tiers = data.get("decision_tiers")
        return cls(
            is_enabled=bool(data.get("is_enabled", defaults.is_enabled)),
            model_id=data.get("model_id") or defaults.model_id,
            timeout_ms=int(data.get("timeout_ms", defaults.timeout_ms)),
            risk_threshold=float(data.get("risk_threshold", defaults.risk_threshold)),
            training_active_batch=data.get("training_active_batch") or "",
            held_message=data.get("held_message", defaults.held_message),
            rejected_message=data.get("rejected_message", defaults.rejected_message),
            layer1_blocklist=list(data.get("layer1_blocklist") or []),
            decision_tiers=(
                tuple(PolicyTier.from_dict(t) for t in tiers)
                if tiers is not None else DEFAULT_DECISION_TIERS
            ),
            version=int(data.get("version", 1)),
        )


class ConfigurationError(Exception):
    """Engine settings are missing a value an operation needs."""
    pass
