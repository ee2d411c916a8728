"""Tests for decision composition."""
import pytest

from riskguard.shared.models import RiskLevel, SafetyDecision
from riskguard.services.safety_service.config import EngineSettings, PolicyTier
from riskguard.services.safety_service.decision import (
    blocks_publication,
    compose_decision,
    decision_message,
    requires_human_review,
)


@pytest.fixture
def settings():
    return EngineSettings(is_enabled=True, risk_threshold=0.7)


class TestComposeDecision:
    """Tests for compose_decision()."""

    def test_layer1_hit_always_holds(self, settings):
        assert compose_decision("kill myself", RiskLevel.SAFE, 0.99, settings) is SafetyDecision.HELD

    def test_classifier_failure_holds(self, settings):
        assert compose_decision(None, None, None, settings) is SafetyDecision.HELD

    def test_high_risk_holds(self, settings):
        assert compose_decision(None, RiskLevel.HIGH_RISK, 0.99, settings) is SafetyDecision.HELD

    def test_uncertain_holds(self, settings):
        assert compose_decision(None, RiskLevel.UNCERTAIN, 0.95, settings) is SafetyDecision.HELD

    def test_confident_safe_approves(self, settings):
        assert compose_decision(None, RiskLevel.SAFE, 0.92, settings) is SafetyDecision.APPROVED

    def test_confident_low_approves(self, settings):
        assert compose_decision(None, RiskLevel.LOW, 0.75, settings) is SafetyDecision.APPROVED

    def test_threshold_is_inclusive(self, settings):
        assert compose_decision(None, RiskLevel.SAFE, 0.7, settings) is SafetyDecision.APPROVED

    def test_low_confidence_safe_holds(self, settings):
        assert compose_decision(None, RiskLevel.SAFE, 0.69, settings) is SafetyDecision.HELD

    def test_hard_stop_tier_rejects(self):
        settings = EngineSettings(
            is_enabled=True,
            decision_tiers=(
                PolicyTier(RiskLevel.HIGH_RISK, SafetyDecision.REJECTED, min_confidence=0.95),
                PolicyTier(RiskLevel.UNCERTAIN, SafetyDecision.HELD),
            ),
        )

        assert compose_decision(None, RiskLevel.HIGH_RISK, 0.97, settings) is SafetyDecision.REJECTED
        assert compose_decision(None, RiskLevel.HIGH_RISK, 0.80, settings) is SafetyDecision.HELD

    def test_hard_stop_tier_never_overrides_layer1(self):
        settings = EngineSettings(
            is_enabled=True,
            decision_tiers=(PolicyTier(RiskLevel.HIGH_RISK, SafetyDecision.REJECTED),),
        )

        assert compose_decision("end my life", RiskLevel.HIGH_RISK, 1.0, settings) is SafetyDecision.HELD

    def test_default_never_rejects(self, settings):
        for level in RiskLevel:
            for confidence in (0.0, 0.5, 1.0):
                decision = compose_decision(None, level, confidence, settings)
                assert decision is not SafetyDecision.REJECTED

    def test_approval_requires_low_severity(self, settings):
        for level in RiskLevel:
            decision = compose_decision(None, level, 1.0, settings)
            if decision is SafetyDecision.APPROVED:
                assert level in (RiskLevel.SAFE, RiskLevel.LOW)


class TestHelpers:
    """Tests for decision predicates and messages."""

    def test_blocks_publication(self):
        assert blocks_publication(SafetyDecision.HELD)
        assert blocks_publication(SafetyDecision.REJECTED)
        assert not blocks_publication(SafetyDecision.APPROVED)

    def test_requires_human_review(self):
        assert requires_human_review(SafetyDecision.HELD)
        assert not requires_human_review(SafetyDecision.REJECTED)

    def test_messages(self, settings):
        assert decision_message(SafetyDecision.HELD, settings) == settings.held_message
        assert decision_message(SafetyDecision.REJECTED, settings) == settings.rejected_message
        assert decision_message(SafetyDecision.APPROVED, settings) is None


class TestEngineSettings:
    """Tests for the settings snapshot."""

    def test_defaults(self):
        settings = EngineSettings()

        assert settings.is_enabled is False
        assert settings.timeout_ms == 1500
        assert settings.risk_threshold == 0.7
        assert settings.training_active_batch == "2026-01_cold_start"

    def test_threshold_validated(self):
        with pytest.raises(ValueError):
            EngineSettings(risk_threshold=1.5)

    def test_updated_bumps_version(self):
        settings = EngineSettings()

        updated = settings.updated(risk_threshold=0.8)

        assert updated.version == settings.version + 1
        assert updated.risk_threshold == 0.8
        assert settings.risk_threshold == 0.7

    def test_dict_round_trip_keeps_tiers(self):
        settings = EngineSettings(
            decision_tiers=(PolicyTier(RiskLevel.HIGH_RISK, SafetyDecision.REJECTED, 0.95),),
        )

        restored = EngineSettings.from_dict(settings.to_dict())

        assert restored.decision_tiers == settings.decision_tiers
        assert restored.layer1_blocklist == settings.layer1_blocklist
