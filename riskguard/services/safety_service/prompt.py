"""Prompt composition and response parsing for the Layer 3 classifier.

Pure module. The live classifier and the training promotion ETL both
build messages through build_prompt_messages(), so a promoted training
example replays exactly what the model saw.
"""
import json
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from riskguard.shared.models import RagContextItem, RiskLevel


SAFETY_SYSTEM_PROMPT = """You are a crisis-prevention assistant reviewing public blog comments.
Your goal is to detect self-harm or suicidal intent and route unclear cases to human review.

Rules:
1. Respond with JSON only. No other text.
2. Distinguish everyday hyperbole ("this homework is killing me", "dying of laughter") from genuine crisis signals.
3. If you are unsure, set risk_level to "Uncertain" and lower the confidence.
4. Consider the whole comment; a single word is not enough to infer intent."""

USER_PROMPT_TEMPLATE = """Assess the risk of the comment below. Respond with JSON only.

[Reference context]
{rag_context}

[Comment]
{comment}

[Output]
JSON only: {{"risk_level": "Safe"|"Low"|"Uncertain"|"High_Risk", "confidence": 0.0-1.0, "reason": "short explanation"}}"""

NO_CONTEXT_PLACEHOLDER = "(no related reference examples)"

_CODE_BLOCK = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class SchemaValidationError(ValueError):
    """Classifier-shaped JSON failed validation."""
    pass


@dataclass(frozen=True)
class ClassifierOutput:
    """Validated structured classifier output."""
    risk_level: RiskLevel
    confidence: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_level": self.risk_level.value,
            "confidence": self.confidence,
            "reason": self.reason,
        }


def format_rag_context(context: Sequence[RagContextItem]) -> str:
    """Render retrieved snippets as a numbered list, in rank order."""
    if not context:
        return NO_CONTEXT_PLACEHOLDER

    lines = []
    for index, item in enumerate(context, start=1):
        score_percent = round(item.score * 100)
        lines.append(f'{index}. "{item.label}" - {item.content} (similarity: {score_percent}%)')
    return "\n".join(lines)


def compose_user_prompt(redacted_text: str, context: Sequence[RagContextItem] = ()) -> str:
    """Fill the user prompt template.

    Args:
        redacted_text: PII-redacted comment text
        context: Layer 2 snippets, in rank order

    Returns:
        User prompt string
    """
    return USER_PROMPT_TEMPLATE.format(
        rag_context=format_rag_context(context),
        comment=redacted_text,
    )


def build_prompt_messages(
    redacted_text: str,
    context: Sequence[RagContextItem] = (),
) -> List[Dict[str, str]]:
    """Chat messages for one classification: system then user."""
    return [
        {"role": "system", "content": SAFETY_SYSTEM_PROMPT},
        {"role": "user", "content": compose_user_prompt(redacted_text, context)},
    ]


def validate_output(obj: Any) -> ClassifierOutput:
    """Validate a classifier-shaped object.

    Args:
        obj: Decoded JSON value

    Returns:
        ClassifierOutput

    Raises:
        SchemaValidationError: If any field is missing or out of range
    """
    if not isinstance(obj, dict):
        raise SchemaValidationError("Output must be a JSON object")

    raw_level = obj.get("risk_level")
    try:
        risk_level = RiskLevel.parse(raw_level)
    except (ValueError, TypeError):
        raise SchemaValidationError(f"Invalid risk_level: {raw_level!r}")

    confidence = obj.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise SchemaValidationError(f"confidence must be a number, got {confidence!r}")
    if math.isnan(confidence) or not 0.0 <= confidence <= 1.0:
        raise SchemaValidationError(f"confidence must be 0.0-1.0, got {confidence}")

    reason = obj.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        raise SchemaValidationError("reason must be a non-empty string")

    return ClassifierOutput(
        risk_level=risk_level,
        confidence=float(confidence),
        reason=reason,
    )


def extract_json(raw: str) -> Optional[str]:
    """Pull a JSON object out of a response that may be fenced in markdown."""
    if not raw or not isinstance(raw, str):
        return None

    trimmed = raw.strip()

    fenced = _CODE_BLOCK.search(trimmed)
    if fenced:
        return fenced.group(1).strip()

    bare = _JSON_OBJECT.search(trimmed)
    if bare:
        return bare.group(0)

    return None


def parse_classifier_response(raw: str) -> Optional[ClassifierOutput]:
    """Parse and validate a raw provider response.

    Returns:
        ClassifierOutput, or None if the response is not valid
    """
    payload = extract_json(raw)
    if payload is None:
        return None

    try:
        return validate_output(json.loads(payload))
    except (json.JSONDecodeError, SchemaValidationError):
        return None
