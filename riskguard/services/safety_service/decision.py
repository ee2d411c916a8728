"""Decision composition.

Pure functions that turn layer outputs into a moderation decision. The
severity policy is data (EngineSettings.decision_tiers), so adding a
REJECTED hard-stop is a settings change, not a code change.
"""
from typing import Optional

from riskguard.shared.models import RiskLevel, SafetyDecision
from .config import EngineSettings


def compose_decision(
    layer1_hit: Optional[str],
    ai_risk_level: Optional[RiskLevel],
    confidence: Optional[float],
    settings: EngineSettings,
) -> SafetyDecision:
    """Compose the moderation decision.

    Order of precedence:
    1. A Layer 1 hit always holds the comment.
    2. No classifier level (failure) holds the comment.
    3. The first matching policy tier decides.
    4. Otherwise low-confidence output holds, everything else approves.

    Args:
        layer1_hit: Matched blocklist term, if any
        ai_risk_level: Classifier level, None if classification failed
        confidence: Classifier confidence
        settings: Engine settings snapshot

    Returns:
        SafetyDecision
    """
    if layer1_hit:
        return SafetyDecision.HELD

    if ai_risk_level is None:
        return SafetyDecision.HELD

    confidence = confidence or 0.0

    for tier in settings.decision_tiers:
        if tier.matches(ai_risk_level, confidence):
            return tier.decision

    if confidence < settings.risk_threshold:
        return SafetyDecision.HELD

    return SafetyDecision.APPROVED


def blocks_publication(decision: SafetyDecision) -> bool:
    """Whether the comment must stay hidden."""
    return decision is not SafetyDecision.APPROVED


def requires_human_review(decision: SafetyDecision) -> bool:
    return decision is SafetyDecision.HELD


def decision_message(decision: SafetyDecision, settings: EngineSettings) -> Optional[str]:
    """User-facing message for a decision, None when approved."""
    if decision is SafetyDecision.HELD:
        return settings.held_message
    if decision is SafetyDecision.REJECTED:
        return settings.rejected_message
    return None
