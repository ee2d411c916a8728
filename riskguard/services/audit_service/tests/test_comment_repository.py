"""Tests for CommentRepository and the held-comment listing."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from unittest.mock import MagicMock

from riskguard.shared.models import ModerationPointer, RiskLevel, SafetyDecision
from riskguard.services.audit_service import (
    CommentRecord,
    CommentRepository,
    ModerationPointerRepository,
    QueueFilters,
    TargetType,
)

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def repository():
    return CommentRepository(pointers=ModerationPointerRepository())


def _add(repository, comment_id, decision=SafetyDecision.HELD, risk_level=RiskLevel.UNCERTAIN,
         confidence=0.5, content="some comment", target_type=TargetType.POST, age_hours=0):
    repository.insert(CommentRecord(
        id=comment_id,
        content=content,
        target_type=target_type,
        target_id="t1",
        created_at=NOW - timedelta(hours=age_hours),
    ))
    repository.pointers.save(ModerationPointer(
        comment_id=comment_id,
        assessment_id=f"a-{comment_id}",
        decision=decision,
        risk_level=risk_level,
        confidence=confidence,
    ))


class TestFindHeldMemory:
    """Tests for find_held() on the in-memory backend."""

    def test_only_held_newest_first(self, repository):
        _add(repository, "old", age_hours=5)
        _add(repository, "new", age_hours=1)
        _add(repository, "approved", decision=SafetyDecision.APPROVED)
        repository.insert(CommentRecord(id="unassessed", content="x", target_type=TargetType.POST, target_id="t1"))

        rows, total = repository.find_held(QueueFilters(), limit=10, offset=0)

        assert [comment.id for comment, _ in rows] == ["new", "old"]
        assert total == 2

    def test_pagination_keeps_total(self, repository):
        for i in range(5):
            _add(repository, f"c{i}", age_hours=i)

        rows, total = repository.find_held(QueueFilters(), limit=2, offset=2)

        assert [comment.id for comment, _ in rows] == ["c2", "c3"]
        assert total == 5

    def test_filters(self, repository):
        _add(repository, "risky", risk_level=RiskLevel.HIGH_RISK, confidence=0.95)
        _add(repository, "unsure", risk_level=RiskLevel.UNCERTAIN, confidence=0.4,
             target_type=TargetType.GALLERY_ITEM, content="Feeling DONE with everything")

        def ids(filters):
            rows, _ = repository.find_held(filters, limit=10, offset=0)
            return {comment.id for comment, _ in rows}

        assert ids(QueueFilters(risk_level=RiskLevel.HIGH_RISK)) == {"risky"}
        assert ids(QueueFilters(confidence_min=0.9)) == {"risky"}
        assert ids(QueueFilters(confidence_max=0.5)) == {"unsure"}
        assert ids(QueueFilters(target_type=TargetType.GALLERY_ITEM)) == {"unsure"}
        assert ids(QueueFilters(search="done with")) == {"unsure"}
        assert ids(QueueFilters(date_from=NOW + timedelta(hours=1))) == set()

    def test_offset_aware_dates_compare_in_utc(self, repository):
        _add(repository, "new")
        _add(repository, "old", age_hours=5)
        plus_two = timezone(timedelta(hours=2))

        def ids(filters):
            rows, _ = repository.find_held(filters, limit=10, offset=0)
            return {comment.id for comment, _ in rows}

        assert ids(QueueFilters(date_from=datetime(2026, 3, 1, 13, 0, tzinfo=plus_two))) == {"new"}
        assert ids(QueueFilters(date_to=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))) == {"new", "old"}
        assert ids(QueueFilters(date_to=datetime(2026, 3, 1, 9, 0, tzinfo=plus_two))) == {"old"}

    def test_set_approved(self, repository):
        _add(repository, "c1")

        assert repository.set_approved("c1") is True
        assert repository.find_by_id("c1").is_approved is True
        assert repository.set_approved("missing") is False


class TestFindHeldPostgres:
    """SQL paths against a mocked cursor."""

    @pytest.fixture
    def cursor(self):
        return MagicMock()

    @pytest.fixture
    def pg_repository(self, cursor):
        manager = MagicMock()
        manager.transaction.return_value.__enter__.return_value = cursor
        return CommentRepository(manager)

    def test_joined_row_mapped(self, pg_repository, cursor):
        cursor.fetchall.return_value = [{
            "id": "c1",
            "content": "text",
            "target_type": "post",
            "target_id": "p1",
            "author_name": None,
            "created_at": NOW,
            "is_approved": False,
            "moderation_assessment_id": "a1",
            "moderation_decision": "HELD",
            "moderation_risk_level": "High_Risk",
            "moderation_confidence": Decimal("0.900"),
            "moderation_updated_at": NOW,
            "total": 7,
        }]

        rows, total = pg_repository.find_held(
            QueueFilters(risk_level=RiskLevel.HIGH_RISK, search="tex"), limit=20, offset=0
        )

        query, params = cursor.execute.call_args.args
        assert "JOIN comment_moderation m" in query
        assert "m.risk_level = %s" in query
        assert "c.content ILIKE %s" in query
        assert params == ("HELD", "High_Risk", "%tex%", 20, 0)
        assert total == 7
        comment, pointer = rows[0]
        assert comment.id == "c1"
        assert pointer.assessment_id == "a1"
        assert pointer.comment_id == "c1"
        assert pointer.confidence == 0.9
        assert pointer.updated_at == NOW
        assert "to_jsonb" not in query
        assert "m.updated_at AS moderation_updated_at" in query

    def test_page_past_end_counts_separately(self, pg_repository, cursor):
        cursor.fetchall.return_value = []
        cursor.fetchone.return_value = {"total": 3}

        rows, total = pg_repository.find_held(QueueFilters(), limit=20, offset=40)

        assert rows == []
        assert total == 3

    def test_date_filters_bound_as_utc(self, pg_repository, cursor):
        cursor.fetchall.return_value = []
        plus_two = timezone(timedelta(hours=2))

        pg_repository.find_held(
            QueueFilters(date_from=datetime(2026, 3, 1, 14, 0, tzinfo=plus_two), date_to=NOW),
            limit=20,
            offset=0,
        )

        _, params = cursor.execute.call_args.args
        assert params[1] == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert params[2] == NOW.replace(tzinfo=timezone.utc)
