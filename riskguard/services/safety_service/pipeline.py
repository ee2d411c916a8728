"""Safety pipeline orchestrator.

Runs one comment through the engine:

    settings snapshot -> PII redaction -> Layer 1 blocklist
        -> Layer 2 retrieval -> Layer 3 classification -> decision

A Layer 1 hit short-circuits: no retrieval, no provider call. A failed
classification fails closed (HELD) and is recorded as such.
"""
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from riskguard.shared.models import RiskLevel, SafetyAssessmentDraft, SafetyDecision
from riskguard.shared.utils import hash_text_for_audit, redact_pii
from riskguard.services.audit_service import AssessmentRepository
from .blocklist import check_blocklist
from .classifier import RiskClassifier
from .config import EngineSettings
from .decision import blocks_publication, compose_decision, decision_message
from .retriever import ContextRetriever
from .settings_repository import SettingsRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SafetyCheckResult:
    """What the caller needs to publish or hold a comment."""
    decision: SafetyDecision
    draft: Optional[SafetyAssessmentDraft]
    message: Optional[str]
    is_approved: bool
    assessment_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "decision": self.decision.value,
            "message": self.message,
            "is_approved": self.is_approved,
            "assessment_id": self.assessment_id,
            "risk_level": (
                self.draft.ai_risk_level.value if self.draft else None
            ),
            "confidence": self.draft.confidence if self.draft else None,
        }


class SafetyPipeline:
    """Three-layer safety check for user comments."""

    def __init__(
        self,
        settings_repository: SettingsRepository,
        retriever: ContextRetriever,
        classifier: RiskClassifier,
        store: AssessmentRepository,
    ):
        self.settings_repository = settings_repository
        self.retriever = retriever
        self.classifier = classifier
        self.store = store

    def check(self, content: str, settings: Optional[EngineSettings] = None) -> SafetyCheckResult:
        """Assess a comment without persisting anything.

        Args:
            content: Raw comment text
            settings: Snapshot to use; loaded if omitted

        Returns:
            SafetyCheckResult; draft is None when the engine is disabled
        """
        settings = settings or self.settings_repository.load()

        if not settings.is_enabled:
            return SafetyCheckResult(
                decision=SafetyDecision.APPROVED,
                draft=None,
                message=None,
                is_approved=True,
            )

        start_time = time.time()
        redacted = redact_pii(content).text

        layer1 = check_blocklist(redacted, settings.layer1_blocklist)
        if layer1.hit:
            logger.critical(
                "LAYER1_BLOCKLIST_HIT",
                extra={
                    "text_hash": hash_text_for_audit(content),
                    "matched_term": layer1.matched,
                    "settings_version": settings.version,
                }
            )
            draft = SafetyAssessmentDraft(
                decision=compose_decision(layer1.matched, RiskLevel.HIGH_RISK, 1.0, settings),
                layer1_hit=layer1.matched,
                layer2_context=[],
                provider=self.classifier.provider_name,
                model_id=settings.model_id,
                ai_risk_level=RiskLevel.HIGH_RISK,
                confidence=1.0,
                ai_reason=layer1.reason,
                latency_ms=self._elapsed_ms(start_time),
                redacted_input=redacted,
            )
            return self._result(draft, settings)

        context = self.retriever.retrieve(redacted)
        classification = self.classifier.classify(redacted, context, settings)

        if classification.success:
            output = classification.output
            decision = compose_decision(None, output.risk_level, output.confidence, settings)
            risk_level, confidence, reason = output.risk_level, output.confidence, output.reason
        else:
            decision = compose_decision(None, None, None, settings)
            risk_level = RiskLevel.UNCERTAIN
            confidence = 0.0
            reason = f"Fail closed: {classification.error}"

        draft = SafetyAssessmentDraft(
            decision=decision,
            layer1_hit=None,
            layer2_context=context,
            provider=self.classifier.provider_name,
            model_id=classification.model_id,
            ai_risk_level=risk_level,
            confidence=confidence,
            ai_reason=reason,
            latency_ms=self._elapsed_ms(start_time),
            redacted_input=redacted,
        )

        logger.info(
            "SAFETY_CHECK_COMPLETED",
            extra={
                "text_hash": hash_text_for_audit(content),
                "decision": decision.value,
                "risk_level": risk_level.value,
                "confidence": confidence,
                "classified": classification.success,
                "context_items": len(context),
                "latency_ms": draft.latency_ms,
            }
        )
        return self._result(draft, settings)

    def check_and_persist(self, comment_id: str, content: str) -> SafetyCheckResult:
        """Assess a comment and record the assessment.

        If the audit row cannot be written the comment is held, whatever
        the engine decided: an unexplained approval is never published.

        Args:
            comment_id: Comment being assessed
            content: Raw comment text

        Returns:
            SafetyCheckResult with assessment_id set when persisted
        """
        settings = self.settings_repository.load()
        result = self.check(content, settings)

        if result.draft is None:
            return result

        assessment_id = self.store.persist(comment_id, result.draft)

        if assessment_id is None:
            logger.error(
                "ASSESSMENT_AUDIT_WRITE_FAILED",
                extra={
                    "comment_id": comment_id,
                    "engine_decision": result.decision.value,
                    "action": "forced_hold",
                }
            )
            return replace(
                result,
                decision=SafetyDecision.HELD,
                message=decision_message(SafetyDecision.HELD, settings),
                is_approved=False,
            )

        return replace(result, assessment_id=assessment_id)

    @staticmethod
    def _result(draft: SafetyAssessmentDraft, settings: EngineSettings) -> SafetyCheckResult:
        return SafetyCheckResult(
            decision=draft.decision,
            draft=draft,
            message=decision_message(draft.decision, settings),
            is_approved=not blocks_publication(draft.decision),
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.time() - start_time) * 1000)
