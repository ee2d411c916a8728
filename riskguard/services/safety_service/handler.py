"""Safety Service HTTP handler.

Exposes the comment check used by the comment-submission flow plus the
admin surface for reviewers: moderation queue, review actions, training
promotion, corpus curation and engine settings.

Authorization is enforced upstream; this service only reads the
X-Reviewer-Id header to attribute reviewer actions. Reviewer ids are
hashed before they reach logs.
"""
import logging
import os
from datetime import datetime
from typing import Optional

from flask import Flask, Response, jsonify, request

from riskguard.shared.database import ConnectionManager, NotFoundError, get_connection_manager
from riskguard.shared.models import HumanLabel, HumanReviewedStatus, RiskLevel, SafetyDecision
from riskguard.shared.utils import configure_pii_salt, hash_pii, hash_text_for_audit
from riskguard.services.audit_service import (
    AssessmentRepository,
    CommentRepository,
    ModerationPointerRepository,
    QueueFilters,
    TargetType,
)
from riskguard.services.corpus_service import (
    CorpusKind,
    CorpusRepository,
    CorpusService,
    CorpusStatus,
    EmbeddingQueue,
    EmbeddingQueueConfig,
    InvalidTransitionError,
    PgVectorIndex,
)
from riskguard.services.llm_service import LLMConfig, OpenAIProvider
from riskguard.services.review_service import ReviewActions, ReviewQueue
from riskguard.services.training_service import TrainingPromoter
from .classifier import RiskClassifier
from .config import ConfigurationError, EngineSettings
from .pipeline import SafetyPipeline
from .prompt import SchemaValidationError
from .retriever import ContextRetriever
from .settings_repository import SettingsRepository

logger = logging.getLogger(__name__)

REVIEWER_HEADER = "X-Reviewer-Id"

# Initialize Flask app
app = Flask(__name__)

# Configure PII salt from environment
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

# PostgreSQL when DB_SECRET_ARN or DB_HOST is set, in-memory stores otherwise (local dev)
connection_manager: Optional[ConnectionManager] = get_connection_manager()

pointer_repository = ModerationPointerRepository(connection_manager)
assessment_repository = AssessmentRepository(connection_manager, pointer_repository)
comment_repository = CommentRepository(connection_manager, pointer_repository)
settings_repository = SettingsRepository(connection_manager)
corpus_repository = CorpusRepository(connection_manager)

retriever = ContextRetriever(
    PgVectorIndex(connection_manager) if connection_manager else None,
    corpus_repository,
)
classifier = RiskClassifier(OpenAIProvider(LLMConfig.from_env()))
pipeline = SafetyPipeline(settings_repository, retriever, classifier, assessment_repository)

review_queue = ReviewQueue(comment_repository, assessment_repository)
review_actions = ReviewActions(comment_repository, assessment_repository)
training_promoter = TrainingPromoter(assessment_repository, settings_repository)
corpus_service = CorpusService(corpus_repository, EmbeddingQueue(EmbeddingQueueConfig.from_env()))


class InvalidRequestError(ValueError):
    """Malformed request parameters."""
    pass


@app.errorhandler(NotFoundError)
def handle_not_found(e):
    return jsonify({"error": str(e)}), 404


@app.errorhandler(InvalidTransitionError)
def handle_invalid_transition(e):
    return jsonify({"error": str(e)}), 409


@app.errorhandler(ConfigurationError)
def handle_configuration_error(e):
    logger.warning("SAFETY_CONFIGURATION_INCOMPLETE", extra={"error": str(e)})
    return jsonify({"error": str(e)}), 409


@app.errorhandler(SchemaValidationError)
def handle_schema_error(e):
    return jsonify({"error": str(e)}), 400


@app.errorhandler(ValueError)
def handle_value_error(e):
    return jsonify({"error": str(e)}), 400


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequestError("JSON object body required")
    return data


def _reviewer_id(required: bool = True) -> str:
    reviewer_id = (request.headers.get(REVIEWER_HEADER) or "").strip()
    if required and not reviewer_id:
        raise InvalidRequestError(f"Missing {REVIEWER_HEADER} header")
    return reviewer_id


def _optional_float(name: str) -> Optional[float]:
    value = request.args.get(name)
    return float(value) if value not in (None, "") else None


def _optional_datetime(name: str) -> Optional[datetime]:
    value = request.args.get(name)
    if not value:
        return None
    # fromisoformat only accepts a trailing Z from Python 3.11
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint for ECS/ALB.

    Returns:
        200 with service status
    """
    return jsonify({
        "status": "healthy",
        "service": "safety-service",
        "backend": "postgresql" if connection_manager else "memory",
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check - verifies the database is reachable.

    Returns:
        200 if ready, 503 if not
    """
    if connection_manager is not None:
        if not connection_manager.health_check()["healthy"]:
            return jsonify({"status": "not_ready", "reason": "database_unavailable"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/check", methods=["POST"])
def check_comment():
    """Assess a comment before it is published.

    Request Body:
        {
            "content": "Comment text",
            "comment_id": "uuid" (optional; persists the assessment when set)
        }

    Response:
        {
            "decision": "APPROVED" | "HELD" | "REJECTED",
            "is_approved": true | false,
            "message": "..." | null,
            "assessment_id": "uuid" | null,
            "risk_level": "Safe" | ... | null,
            "confidence": 0.0-1.0 | null
        }

    Error Handling:
        On ANY error, returns HELD. We never fail open - if the engine
        breaks, the comment waits for a human.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        logger.warning("CHECK_REQUEST_INVALID", extra={"reason": "empty_body"})
        return jsonify({"error": "Request body required"}), 400

    content = data.get("content")
    if not content or not isinstance(content, str):
        logger.warning("CHECK_REQUEST_INVALID", extra={"reason": "missing_content"})
        return jsonify({"error": "Missing required field: content"}), 400

    comment_id = data.get("comment_id")

    try:
        logger.info(
            "CHECK_REQUESTED",
            extra={
                "comment_id": comment_id,
                "text_hash": hash_text_for_audit(content),
                "content_length": len(content),
            }
        )

        if comment_id:
            result = pipeline.check_and_persist(comment_id, content)
        else:
            result = pipeline.check(content)

        return jsonify(result.to_dict()), 200

    except Exception as e:
        logger.error(
            "CHECK_ERROR",
            extra={
                "comment_id": comment_id,
                "error": str(e),
                "error_type": type(e).__name__,
                "action": "DEFAULTING_TO_HELD",
            }
        )
        return jsonify({
            "decision": SafetyDecision.HELD.value,
            "is_approved": False,
            "message": EngineSettings().held_message,
            "assessment_id": None,
            "risk_level": None,
            "confidence": None,
            "error": "Safety engine error - holding for review",
        }), 200


@app.route("/queue", methods=["GET"])
def list_queue():
    """List held comments.

    Query parameters: risk_level, confidence_min, confidence_max,
    target_type, date_from, date_to, search, limit, offset.
    """
    risk_level = request.args.get("risk_level")
    target_type = request.args.get("target_type")

    filters = QueueFilters(
        risk_level=RiskLevel.parse(risk_level) if risk_level else None,
        confidence_min=_optional_float("confidence_min"),
        confidence_max=_optional_float("confidence_max"),
        target_type=TargetType(target_type) if target_type else None,
        date_from=_optional_datetime("date_from"),
        date_to=_optional_datetime("date_to"),
        search=request.args.get("search") or None,
    )
    page = review_queue.list_held(
        filters,
        limit=int(request.args.get("limit", 20)),
        offset=int(request.args.get("offset", 0)),
    )
    return jsonify(page.to_dict()), 200


@app.route("/assessments/<assessment_id>", methods=["GET"])
def get_assessment(assessment_id: str):
    return jsonify(review_queue.get_detail(assessment_id).to_dict()), 200


@app.route("/comments/<comment_id>/approve", methods=["POST"])
def approve_comment(comment_id: str):
    review_actions.approve(comment_id, _reviewer_id(required=False))
    return jsonify({"comment_id": comment_id, "decision": SafetyDecision.APPROVED.value}), 200


@app.route("/comments/<comment_id>/reject", methods=["POST"])
def reject_comment(comment_id: str):
    review_actions.reject(comment_id, _reviewer_id(required=False))
    return jsonify({"comment_id": comment_id, "decision": SafetyDecision.REJECTED.value}), 200


@app.route("/assessments/<assessment_id>/label", methods=["POST"])
def label_assessment(assessment_id: str):
    reviewer_id = _reviewer_id()
    label = HumanLabel(_json_body().get("label"))
    assessment = review_actions.label(assessment_id, label, reviewer_id)
    return jsonify(assessment.to_dict()), 200


@app.route("/assessments/<assessment_id>/reviewed-status", methods=["POST"])
def set_reviewed_status(assessment_id: str):
    reviewer_id = _reviewer_id()
    status = HumanReviewedStatus(_json_body().get("status"))
    assessment = review_actions.mark_reviewed_status(assessment_id, status, reviewer_id)
    return jsonify(assessment.to_dict()), 200


@app.route("/assessments/<assessment_id>/promote", methods=["POST"])
def promote_assessment(assessment_id: str):
    """Promote a reviewed assessment into the active training batch.

    Request Body:
        {"output": {"risk_level": "...", "confidence": 0.9, "reason": "..."}}
    """
    reviewer_id = _reviewer_id()
    row = training_promoter.promote(assessment_id, reviewer_id, _json_body().get("output"))
    return jsonify(row.to_dict()), 201


@app.route("/training/<dataset_batch>", methods=["GET"])
def list_training_rows(dataset_batch: str):
    rows = training_promoter.list_rows(dataset_batch)
    return jsonify({"dataset_batch": dataset_batch, "rows": [r.to_dict() for r in rows]}), 200


@app.route("/training/<dataset_batch>/export", methods=["GET"])
def export_training_batch(dataset_batch: str):
    return Response(
        training_promoter.export_jsonl(dataset_batch),
        mimetype="application/x-ndjson",
    )


@app.route("/corpus", methods=["GET"])
def list_corpus():
    kind = request.args.get("kind")
    status = request.args.get("status")
    items = corpus_service.list_items(
        kind=CorpusKind(kind) if kind else None,
        status=CorpusStatus(status) if status else None,
        search=request.args.get("search") or None,
    )
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@app.route("/corpus", methods=["POST"])
def create_corpus_item():
    reviewer_id = _reviewer_id()
    data = _json_body()
    item = corpus_service.create(
        CorpusKind(data.get("kind")),
        data.get("label") or "",
        data.get("content") or "",
        reviewer_id,
    )
    return jsonify(item.to_dict()), 201


@app.route("/corpus/promote", methods=["POST"])
def promote_to_corpus():
    """Create a corpus item from a reviewed comment snippet.

    Request Body:
        {"text": "...", "label": "...", "kind": "slang" | "case", "activate": false}
    """
    reviewer_id = _reviewer_id()
    data = _json_body()
    item = corpus_service.promote_to_corpus(
        text=data.get("text") or "",
        label=data.get("label") or "",
        kind=CorpusKind(data.get("kind")),
        user_id=reviewer_id,
        activate=bool(data.get("activate", False)),
    )
    return jsonify(item.to_dict()), 201


@app.route("/corpus/<item_id>", methods=["GET"])
def get_corpus_item(item_id: str):
    return jsonify(corpus_service.get(item_id).to_dict()), 200


@app.route("/corpus/<item_id>", methods=["PATCH"])
def update_corpus_item(item_id: str):
    reviewer_id = _reviewer_id()
    data = _json_body()
    item = corpus_service.update(
        item_id,
        reviewer_id,
        label=data.get("label"),
        content=data.get("content"),
    )
    return jsonify(item.to_dict()), 200


@app.route("/corpus/<item_id>/status", methods=["POST"])
def set_corpus_status(item_id: str):
    reviewer_id = _reviewer_id()
    status = CorpusStatus(_json_body().get("status"))
    item = corpus_service.set_status(item_id, status, reviewer_id)
    return jsonify(item.to_dict()), 200


@app.route("/corpus/<item_id>", methods=["DELETE"])
def delete_corpus_item(item_id: str):
    if not corpus_service.delete(item_id):
        raise NotFoundError(f"Corpus item {item_id} not found")
    return "", 204


@app.route("/settings", methods=["GET"])
def get_settings():
    return jsonify(settings_repository.load().to_dict()), 200


@app.route("/settings", methods=["PATCH"])
def update_settings():
    reviewer_id = _reviewer_id()
    data = _json_body()
    data.pop("version", None)
    settings = settings_repository.update(**data)
    logger.info(
        "SAFETY_SETTINGS_CHANGED_BY_REVIEWER",
        extra={"version": settings.version, "reviewer_hash": hash_pii(reviewer_id)}
    )
    return jsonify(settings.to_dict()), 200


if __name__ == "__main__":
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Run development server
    port = int(os.getenv("PORT", "8001"))
    app.run(host="0.0.0.0", port=port, debug=False)
