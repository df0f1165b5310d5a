"""Gateway-backed grader for free-text submissions."""

import logging
from typing import Any, Dict, Optional

from autograde.libs.gateway_client import (
    GatewayClient, GatewayError, NotReadyError, Quality, decode_json_content,
)
from .models import AICriterionScore, AIResponse

LOG = logging.getLogger(__name__)


class InvalidAIGradeError(GatewayError):
    """The gateway answered, but the grade it returned cannot be used."""


def _number(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def normalize_ai_response(data: Dict[str, Any]) -> AIResponse:
    """
    Coerce a decoded grade map into an AIResponse.

    Models are loose about naming, so a few aliases are accepted. Criteria
    entries that are not objects keep their position as unnamed zero scores
    so later warnings can still point at them by index.
    """
    criteria = []
    raw_criteria = data.get('criteria')
    if isinstance(raw_criteria, dict):
        raw_criteria = [
            dict(value, name=name) if isinstance(value, dict) else {'name': name, 'score': value}
            for name, value in raw_criteria.items()
        ]
    if not isinstance(raw_criteria, list):
        raw_criteria = []

    for entry in raw_criteria:
        if not isinstance(entry, dict):
            criteria.append(AICriterionScore())
            continue
        criteria.append(AICriterionScore(
            name=str(entry.get('name') or '').strip(),
            score=_number(entry.get('score')),
            feedback=str(entry.get('feedback') or ''),
        ))

    confidence = _number(data.get('confidence'), default=None)
    if confidence is not None:
        confidence = max(0.0, min(1.0, confidence))

    max_score = _number(_first(data, 'max_score', 'maxgrade'), default=None)

    return AIResponse(
        score=_number(_first(data, 'score', 'grade')),
        max_score=max_score,
        reasoning=str(_first(data, 'reasoning', 'feedback') or ''),
        confidence=confidence,
        criteria=criteria,
    )


class AIGrader:
    """Grade free text against an optional rubric through the gateway."""

    def __init__(self, gateway: GatewayClient):
        self.gateway = gateway

    def grade_text(self, question: str, student_text: str,
                   rubric_json: Optional[str] = None,
                   quality: Quality = Quality.BALANCED) -> Dict[str, Any]:
        """
        Grade a piece of text.

        Args:
            question: Question or assignment prompt
            student_text: The student's answer
            rubric_json: Prompt-ready rubric JSON (see rubric_to_json)
            quality: Quality tier

        Returns:
            The decoded grade map

        Raises:
            NotReadyError: If the gateway is not configured
            InvalidAIGradeError: If the gateway returned an empty or non-object grade
        """
        if not self.gateway.is_ready():
            raise NotReadyError("AI gateway is not configured (missing gateway.key)")

        payload = {
            'question': question,
            'submission': student_text,
            'rubric_json': rubric_json,
        }
        response = self.gateway.grade('grade_text', payload, quality)

        data = decode_json_content(response.content)
        if not data:
            LOG.warning("Gateway (%s) returned an unusable grade", response.provider)
            raise InvalidAIGradeError("Gateway returned empty/invalid JSON")

        data = dict(data)
        data.setdefault('provider', response.provider)
        return data
