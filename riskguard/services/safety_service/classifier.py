"""Layer 3: LLM risk classification.

Sends the PII-redacted comment plus Layer 2 context to the provider and
validates the structured answer. Every failure mode (timeout, provider
error, malformed output) comes back as an unsuccessful result; nothing is
coerced into a default risk level here. The pipeline decides what a
failure means.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from riskguard.shared.models import RagContextItem
from riskguard.services.llm_service import (
    LLMProvider,
    OpenAIProvider,
    ProviderError,
    ProviderTimeoutError,
)
from .config import EngineSettings
from .prompt import ClassifierOutput, build_prompt_messages, parse_classifier_response

logger = logging.getLogger(__name__)


class FailureKind(Enum):
    """Why a classification produced no usable output."""
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"
    INVALID_OUTPUT = "invalid_output"


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of one Layer 3 call."""
    success: bool
    model_id: str
    latency_ms: int
    output: Optional[ClassifierOutput] = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None

    def __post_init__(self):
        if self.success and self.output is None:
            raise ValueError("Successful classification requires output")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "model_id": self.model_id,
            "latency_ms": self.latency_ms,
            "output": self.output.to_dict() if self.output else None,
            "error": self.error,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
        }


class RiskClassifier:
    """Classifies redacted comment text through an LLM provider."""

    def __init__(self, provider: Optional[LLMProvider] = None):
        """Initialize classifier.

        Args:
            provider: LLM provider (defaults to OpenAI configured from env)
        """
        self.provider = provider or OpenAIProvider()

    @property
    def provider_name(self) -> str:
        return self.provider.name

    def classify(
        self,
        redacted_text: str,
        context: List[RagContextItem],
        settings: EngineSettings,
    ) -> ClassificationResult:
        """Classify one comment.

        Args:
            redacted_text: PII-redacted comment text
            context: Layer 2 snippets, in rank order
            settings: Engine settings snapshot for this run

        Returns:
            ClassificationResult; success is False on any failure
        """
        model_id = settings.model_id
        timeout_ms = settings.effective_timeout_ms
        system_message, user_message = build_prompt_messages(redacted_text, context)

        start_time = time.time()

        try:
            response = self.provider.classify(
                system_prompt=system_message["content"],
                user_prompt=user_message["content"],
                model_id=model_id,
                timeout_ms=timeout_ms,
            )
        except ProviderTimeoutError as e:
            return self._failure(model_id, start_time, FailureKind.TIMEOUT, str(e))
        except ProviderError as e:
            return self._failure(model_id, start_time, FailureKind.PROVIDER_ERROR, str(e))

        latency_ms = self._elapsed_ms(start_time)
        output = parse_classifier_response(response.text)

        if output is None:
            return self._failure(
                model_id,
                start_time,
                FailureKind.INVALID_OUTPUT,
                "Response failed schema validation",
            )

        logger.info(
            "RISK_CLASSIFICATION_COMPLETED",
            extra={
                "model_id": model_id,
                "risk_level": output.risk_level.value,
                "confidence": output.confidence,
                "context_items": len(context),
                "latency_ms": latency_ms,
            }
        )

        return ClassificationResult(
            success=True,
            model_id=model_id,
            latency_ms=latency_ms,
            output=output,
        )

    def _failure(
        self,
        model_id: str,
        start_time: float,
        kind: FailureKind,
        error: str,
    ) -> ClassificationResult:
        latency_ms = self._elapsed_ms(start_time)
        logger.warning(
            "RISK_CLASSIFICATION_FAILED",
            extra={
                "model_id": model_id,
                "failure_kind": kind.value,
                "error": error,
                "latency_ms": latency_ms,
            }
        )
        return ClassificationResult(
            success=False,
            model_id=model_id,
            latency_ms=latency_ms,
            error=error,
            failure_kind=kind,
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.time() - start_time) * 1000)
