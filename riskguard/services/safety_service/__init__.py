"""Safety Service: three-layer risk check for user comments.

Every comment passes through the pipeline before it is published:
Layer 1 is a deterministic blocklist, Layer 2 retrieves reference
examples, Layer 3 asks an LLM for a structured risk assessment. Anything
the engine is unsure about is held for human review.

Components:
- pipeline.py: SafetyPipeline orchestrator
- blocklist.py: Layer 1 matcher
- retriever.py: Layer 2 context retrieval
- prompt.py / classifier.py: Layer 3 prompt composition and classification
- decision.py: decision policy
- config.py / settings_repository.py: engine settings snapshot
- handler.py: Flask HTTP endpoints

Usage:
    # As HTTP service
    POST /check {"content": "...", "comment_id": "..."}

    # Direct import
    from riskguard.services.safety_service import SafetyPipeline
    result = pipeline.check_and_persist(comment_id, content)
"""

from .blocklist import BlocklistResult, check_blocklist
from .classifier import ClassificationResult, FailureKind, RiskClassifier
from .config import ConfigurationError, EngineSettings, PolicyTier
from .decision import blocks_publication, compose_decision, decision_message, requires_human_review
from .pipeline import SafetyCheckResult, SafetyPipeline
from .prompt import (
    ClassifierOutput,
    SchemaValidationError,
    build_prompt_messages,
    parse_classifier_response,
    validate_output,
)
from .retriever import ContextRetriever
from .settings_repository import SettingsRepository

__all__ = [
    "BlocklistResult",
    "check_blocklist",
    "ClassificationResult",
    "FailureKind",
    "RiskClassifier",
    "ConfigurationError",
    "EngineSettings",
    "PolicyTier",
    "blocks_publication",
    "compose_decision",
    "decision_message",
    "requires_human_review",
    "SafetyCheckResult",
    "SafetyPipeline",
    "ClassifierOutput",
    "SchemaValidationError",
    "build_prompt_messages",
    "parse_classifier_response",
    "validate_output",
    "ContextRetriever",
    "SettingsRepository",
]
