"""Tests for Safety Service HTTP handler.

Tests the /check endpoint and the reviewer admin surface against
in-memory stores and a mocked LLM provider.
"""
import json
import pytest
from unittest.mock import patch, MagicMock

from riskguard.shared.utils import configure_pii_salt
from riskguard.services.audit_service import (
    AssessmentRepository,
    CommentRecord,
    CommentRepository,
    ModerationPointerRepository,
    TargetType,
)
from riskguard.services.corpus_service import CorpusKind, CorpusRepository, CorpusService
from riskguard.services.llm_service import LLMResponse
from riskguard.services.review_service import ReviewActions, ReviewQueue
from riskguard.services.training_service import TrainingPromoter
from riskguard.services.safety_service import handler
from riskguard.services.safety_service.classifier import RiskClassifier
from riskguard.services.safety_service.pipeline import SafetyPipeline
from riskguard.services.safety_service.retriever import ContextRetriever
from riskguard.services.safety_service.settings_repository import SettingsRepository


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt before each test."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def provider():
    provider = MagicMock()
    provider.name = "openai"
    provider.classify.return_value = LLMResponse(
        text=json.dumps({"risk_level": "High_Risk", "confidence": 0.9, "reason": "crisis language"}),
        model="gpt-4o-mini",
        provider="openai",
    )
    return provider


@pytest.fixture
def services(provider):
    """Replace the module-level wiring with fresh in-memory stores."""
    pointers = ModerationPointerRepository()
    assessments = AssessmentRepository(pointers=pointers)
    comments = CommentRepository(pointers=pointers)
    settings = SettingsRepository()
    settings.update(is_enabled=True, layer1_blocklist=["end it all"])
    corpus_repository = CorpusRepository()
    queue = MagicMock()
    queue.enqueue.return_value = True

    wiring = {
        "comment_repository": comments,
        "assessment_repository": assessments,
        "settings_repository": settings,
        "pipeline": SafetyPipeline(
            settings,
            ContextRetriever(None, corpus_repository),
            RiskClassifier(provider),
            assessments,
        ),
        "review_queue": ReviewQueue(comments, assessments),
        "review_actions": ReviewActions(comments, assessments),
        "training_promoter": TrainingPromoter(assessments, settings),
        "corpus_service": CorpusService(corpus_repository, queue),
    }
    patchers = [patch.object(handler, name, value) for name, value in wiring.items()]
    for patcher in patchers:
        patcher.start()
    yield wiring
    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def client(services):
    """Create Flask test client."""
    handler.app.config['TESTING'] = True
    with handler.app.test_client() as client:
        yield client


REVIEWER = {"X-Reviewer-Id": "reviewer_1"}


def _held_comment(client, services, comment_id="c1", content="nobody would miss me"):
    services["comment_repository"].insert(CommentRecord(
        id=comment_id,
        content=content,
        target_type=TargetType.POST,
        target_id="post_1",
    ))
    response = client.post('/check', json={"content": content, "comment_id": comment_id})
    return json.loads(response.data)


class TestHealthEndpoints:
    """Tests for /health and /ready."""

    def test_health_returns_200(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'healthy'
        assert data['service'] == 'safety-service'

    def test_ready_without_database(self, client):
        with patch.object(handler, "connection_manager", None):
            response = client.get('/ready')
        assert response.status_code == 200

    def test_not_ready_when_database_down(self, client):
        manager = MagicMock()
        manager.health_check.return_value = {"status": "unhealthy", "healthy": False}
        with patch.object(handler, "connection_manager", manager):
            response = client.get('/ready')
        assert response.status_code == 503


class TestCheckEndpoint:
    """Tests for /check."""

    def test_blocklist_hit_is_held(self, client, provider):
        response = client.post('/check', json={"content": "I want to end it all"})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['decision'] == 'HELD'
        assert data['is_approved'] is False
        assert data['risk_level'] == 'High_Risk'
        provider.classify.assert_not_called()

    def test_safe_comment_approved(self, client, provider):
        provider.classify.return_value = LLMResponse(
            text='{"risk_level": "Low", "confidence": 0.9, "reason": "small talk"}',
            model="gpt-4o-mini",
            provider="openai",
        )

        data = json.loads(client.post('/check', json={"content": "nice weather today"}).data)

        assert data['decision'] == 'APPROVED'
        assert data['message'] is None

    def test_missing_content_returns_400(self, client):
        response = client.post('/check', json={"comment_id": "c1"})
        assert response.status_code == 400

    def test_empty_body_returns_400(self, client):
        response = client.post('/check', data="", content_type='application/json')
        assert response.status_code == 400

    def test_engine_error_holds(self, client, services):
        with patch.object(services["pipeline"], "check", side_effect=RuntimeError("boom")):
            response = client.post('/check', json={"content": "hello"})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['decision'] == 'HELD'
        assert data['is_approved'] is False

    def test_comment_id_persists_assessment(self, client, services):
        data = _held_comment(client, services)

        assert data['assessment_id'] is not None
        pointer = services["assessment_repository"].get_pointer("c1")
        assert pointer.assessment_id == data['assessment_id']


class TestReviewEndpoints:
    """Tests for the moderation queue and review actions."""

    def test_queue_lists_held_comment(self, client, services):
        _held_comment(client, services)

        data = json.loads(client.get('/queue').data)

        assert data['total'] == 1
        item = data['items'][0]
        assert item['comment_id'] == 'c1'
        assert item['author_name'] == 'Anonymous'
        assert item['ai_reason'] == 'crisis language'

    def test_queue_filters_by_risk_level(self, client, services):
        _held_comment(client, services)

        data = json.loads(client.get('/queue?risk_level=Low').data)

        assert data['total'] == 0

    def test_queue_filters_by_offset_aware_dates(self, client, services):
        _held_comment(client, services)

        since = client.get('/queue', query_string={"date_from": "2000-01-01T00:00:00Z"})
        before = client.get('/queue', query_string={"date_to": "2000-01-01T00:00:00+02:00"})

        assert since.status_code == 200
        assert json.loads(since.data)['total'] == 1
        assert before.status_code == 200
        assert json.loads(before.data)['total'] == 0

    def test_queue_invalid_date_returns_400(self, client, services):
        response = client.get('/queue', query_string={"date_from": "yesterday"})

        assert response.status_code == 400

    def test_approve_publishes(self, client, services):
        _held_comment(client, services)

        response = client.post('/comments/c1/approve', headers=REVIEWER)

        assert response.status_code == 200
        assert services["comment_repository"].find_by_id("c1").is_approved is True
        assert json.loads(client.get('/queue').data)['total'] == 0

    def test_reject_deletes_comment(self, client, services):
        _held_comment(client, services)

        response = client.post('/comments/c1/reject', headers=REVIEWER)

        assert response.status_code == 200
        assert services["comment_repository"].find_by_id("c1") is None

    def test_approve_unknown_comment_returns_404(self, client):
        response = client.post('/comments/missing/approve', headers=REVIEWER)
        assert response.status_code == 404

    def test_label_requires_reviewer(self, client, services):
        assessment_id = _held_comment(client, services)['assessment_id']

        response = client.post(
            f'/assessments/{assessment_id}/label',
            json={"label": "True_Positive"},
        )

        assert response.status_code == 400

    def test_label_recorded(self, client, services):
        assessment_id = _held_comment(client, services)['assessment_id']

        response = client.post(
            f'/assessments/{assessment_id}/label',
            json={"label": "True_Positive"},
            headers=REVIEWER,
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['human_label'] == 'True_Positive'
        assert data['decision'] == 'HELD'

    def test_invalid_label_returns_400(self, client, services):
        assessment_id = _held_comment(client, services)['assessment_id']

        response = client.post(
            f'/assessments/{assessment_id}/label',
            json={"label": "Maybe"},
            headers=REVIEWER,
        )

        assert response.status_code == 400


class TestTrainingEndpoints:
    """Tests for training promotion and export."""

    def test_promote_and_export(self, client, services):
        assessment_id = _held_comment(client, services)['assessment_id']
        output = {"risk_level": "High_Risk", "confidence": 0.95, "reason": "confirmed"}

        response = client.post(
            f'/assessments/{assessment_id}/promote',
            json={"output": output},
            headers=REVIEWER,
        )

        assert response.status_code == 201
        row = json.loads(response.data)
        export = client.get(f"/training/{row['dataset_batch']}/export")
        lines = export.data.decode().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])['messages'][-1]['role'] == 'assistant'

    def test_promote_invalid_output_returns_400(self, client, services):
        assessment_id = _held_comment(client, services)['assessment_id']

        response = client.post(
            f'/assessments/{assessment_id}/promote',
            json={"output": {"risk_level": "Catastrophic", "confidence": 0.5, "reason": "x"}},
            headers=REVIEWER,
        )

        assert response.status_code == 400

    def test_promote_without_batch_returns_409(self, client, services):
        assessment_id = _held_comment(client, services)['assessment_id']
        services["settings_repository"].update(training_active_batch="")

        response = client.post(
            f'/assessments/{assessment_id}/promote',
            json={"output": {"risk_level": "Safe", "confidence": 0.9, "reason": "x"}},
            headers=REVIEWER,
        )

        assert response.status_code == 409


class TestCorpusEndpoints:
    """Tests for corpus curation."""

    def test_create_and_activate(self, client, services):
        response = client.post(
            '/corpus',
            json={"kind": "slang", "label": "hyperbole", "content": "killing me = tired"},
            headers=REVIEWER,
        )
        assert response.status_code == 201
        item_id = json.loads(response.data)['id']

        response = client.post(f'/corpus/{item_id}/status', json={"status": "active"}, headers=REVIEWER)

        assert response.status_code == 200
        assert json.loads(response.data)['status'] == 'active'

    def test_invalid_transition_returns_409(self, client, services):
        item = services["corpus_service"].create(
            CorpusKind.SLANG, "label", "content", "reviewer_1"
        )

        response = client.post(f'/corpus/{item.id}/status', json={"status": "draft"}, headers=REVIEWER)

        assert response.status_code == 409

    def test_delete_missing_returns_404(self, client):
        assert client.delete('/corpus/missing').status_code == 404


class TestSettingsEndpoints:
    """Tests for engine settings."""

    def test_get_settings(self, client):
        data = json.loads(client.get('/settings').data)
        assert data['is_enabled'] is True

    def test_patch_settings_bumps_version(self, client):
        before = json.loads(client.get('/settings').data)['version']

        response = client.patch('/settings', json={"risk_threshold": 0.8, "version": 1}, headers=REVIEWER)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['risk_threshold'] == 0.8
        assert data['version'] == before + 1

    def test_patch_unknown_field_returns_400(self, client):
        response = client.patch('/settings', json={"colour": "red"}, headers=REVIEWER)
        assert response.status_code == 400
