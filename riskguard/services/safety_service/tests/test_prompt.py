"""Tests for prompt composition and response parsing."""
import json

import pytest

from riskguard.shared.models import RagContextItem, RiskLevel
from riskguard.services.safety_service.prompt import (
    NO_CONTEXT_PLACEHOLDER,
    SAFETY_SYSTEM_PROMPT,
    SchemaValidationError,
    build_prompt_messages,
    compose_user_prompt,
    format_rag_context,
    parse_classifier_response,
    validate_output,
)


CONTEXT = [
    RagContextItem(label="hyperbole", content="'killing me' means exhausted", score=0.876, kind="slang"),
    RagContextItem(label="case", content="past holiday complaint", score=0.5, kind="case"),
]


class TestFormatRagContext:
    """Tests for context rendering."""

    def test_numbered_with_similarity(self):
        rendered = format_rag_context(CONTEXT)

        assert rendered.splitlines() == [
            "1. \"hyperbole\" - 'killing me' means exhausted (similarity: 88%)",
            "2. \"case\" - past holiday complaint (similarity: 50%)",
        ]

    def test_empty_placeholder(self):
        assert format_rag_context([]) == NO_CONTEXT_PLACEHOLDER


class TestBuildPromptMessages:
    """Tests for chat message construction."""

    def test_system_then_user(self):
        messages = build_prompt_messages("this homework is killing me", CONTEXT)

        assert [m["role"] for m in messages] == ["system", "user"]
        assert messages[0]["content"] == SAFETY_SYSTEM_PROMPT
        assert "this homework is killing me" in messages[1]["content"]
        assert "similarity: 88%" in messages[1]["content"]

    def test_deterministic(self):
        assert build_prompt_messages("x", CONTEXT) == build_prompt_messages("x", CONTEXT)

    def test_user_prompt_without_context(self):
        prompt = compose_user_prompt("hello")

        assert NO_CONTEXT_PLACEHOLDER in prompt
        assert '"risk_level"' in prompt


class TestValidateOutput:
    """Tests for classifier output validation."""

    def test_valid(self):
        output = validate_output({"risk_level": "Safe", "confidence": 0.9, "reason": "hyperbole"})

        assert output.risk_level is RiskLevel.SAFE
        assert output.confidence == 0.9
        assert output.to_dict() == {"risk_level": "Safe", "confidence": 0.9, "reason": "hyperbole"}

    def test_integer_confidence_accepted(self):
        assert validate_output({"risk_level": "Low", "confidence": 1, "reason": "r"}).confidence == 1.0

    def test_extra_keys_ignored(self):
        output = validate_output(
            {"risk_level": "Low", "confidence": 0.6, "reason": "r", "notes": "extra"}
        )
        assert output.risk_level is RiskLevel.LOW

    @pytest.mark.parametrize("obj", [
        None,
        [],
        "Safe",
        {"confidence": 0.9, "reason": "r"},
        {"risk_level": "Critical", "confidence": 0.9, "reason": "r"},
        {"risk_level": "Safe", "reason": "r"},
        {"risk_level": "Safe", "confidence": "0.9", "reason": "r"},
        {"risk_level": "Safe", "confidence": True, "reason": "r"},
        {"risk_level": "Safe", "confidence": 1.2, "reason": "r"},
        {"risk_level": "Safe", "confidence": -0.1, "reason": "r"},
        {"risk_level": "Safe", "confidence": 0.9},
        {"risk_level": "Safe", "confidence": 0.9, "reason": "   "},
        {"risk_level": "Safe", "confidence": 0.9, "reason": 42},
    ])
    def test_invalid_shapes(self, obj):
        with pytest.raises(SchemaValidationError):
            validate_output(obj)

    def test_schema_error_is_value_error(self):
        assert issubclass(SchemaValidationError, ValueError)


class TestParseClassifierResponse:
    """Tests for raw response parsing."""

    def test_plain_json(self):
        raw = json.dumps({"risk_level": "High_Risk", "confidence": 0.95, "reason": "explicit"})

        assert parse_classifier_response(raw).risk_level is RiskLevel.HIGH_RISK

    def test_markdown_fenced(self):
        raw = '```json\n{"risk_level": "Safe", "confidence": 0.8, "reason": "joke"}\n```'

        assert parse_classifier_response(raw).reason == "joke"

    def test_json_with_surrounding_text(self):
        raw = 'Here you go: {"risk_level": "Uncertain", "confidence": 0.4, "reason": "unclear"}'

        assert parse_classifier_response(raw).risk_level is RiskLevel.UNCERTAIN

    def test_not_json(self):
        assert parse_classifier_response("I think it is fine") is None

    def test_broken_json(self):
        assert parse_classifier_response('{"risk_level": "Safe", ') is None

    def test_schema_failure(self):
        assert parse_classifier_response('{"risk_level": "Safe", "confidence": 2}') is None

    def test_empty(self):
        assert parse_classifier_response("") is None
