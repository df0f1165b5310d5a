"""Unit tests for the gateway-backed grader (mocked gateway, no API calls)."""

import pytest
from unittest.mock import Mock

from autograde.libs.gateway_client import GatewayResponse, NotReadyError, Quality, TransportError
from autograde.tools.ai_grading.grader import AIGrader, InvalidAIGradeError, normalize_ai_response


def make_gateway(content=None, provider="gateway", ready=True):
    gateway = Mock()
    gateway.is_ready.return_value = ready
    gateway.grade.return_value = GatewayResponse(provider=provider, content=content)
    return gateway


class TestGradeText:

    def test_not_ready(self):
        gateway = make_gateway(ready=False)
        grader = AIGrader(gateway)

        with pytest.raises(NotReadyError):
            grader.grade_text("Q", "answer")
        gateway.grade.assert_not_called()

    def test_payload_and_operation(self):
        gateway = make_gateway(content={"score": 8})
        grader = AIGrader(gateway)

        grader.grade_text("Explain X", "X is Y", '{"criteria": []}', Quality.FAST)

        gateway.grade.assert_called_once_with(
            'grade_text',
            {'question': 'Explain X', 'submission': 'X is Y', 'rubric_json': '{"criteria": []}'},
            Quality.FAST,
        )

    def test_string_content_decoded(self):
        grader = AIGrader(make_gateway(content='{"score": 8, "max_score": 10}', provider="claude"))

        data = grader.grade_text("Q", "A")

        assert data["score"] == 8
        assert data["max_score"] == 10
        assert data["provider"] == "claude"

    def test_structured_content_accepted(self):
        grader = AIGrader(make_gateway(content={"score": 6, "criteria": []}))
        assert grader.grade_text("Q", "A")["score"] == 6

    def test_structured_content_not_mutated(self):
        content = {"score": 6}
        grader = AIGrader(make_gateway(content=content, provider="claude"))

        data = grader.grade_text("Q", "A")

        assert data["provider"] == "claude"
        assert content == {"score": 6}

    @pytest.mark.parametrize("content", ["", "not json", "[1, 2]", {}, [], None, 12])
    def test_unusable_content(self, content):
        grader = AIGrader(make_gateway(content=content))
        with pytest.raises(InvalidAIGradeError):
            grader.grade_text("Q", "A")

    def test_transport_errors_propagate(self):
        gateway = make_gateway()
        gateway.grade.side_effect = TransportError("boom")
        with pytest.raises(TransportError):
            AIGrader(gateway).grade_text("Q", "A")


class TestNormalizeAIResponse:

    def test_full_response(self):
        response = normalize_ai_response({
            "score": 17,
            "max_score": 30,
            "reasoning": "Solid work",
            "confidence": 0.82,
            "criteria": [
                {"name": "Clarity", "score": 8, "feedback": "Clear"},
                {"name": "Accuracy", "score": "9", "feedback": "Mostly right"},
            ],
        })

        assert response.score == 17
        assert response.max_score == 30
        assert response.reasoning == "Solid work"
        assert response.confidence == 0.82
        assert [c.name for c in response.criteria] == ["Clarity", "Accuracy"]
        assert response.criteria[1].score == 9.0

    def test_aliases_and_defaults(self):
        response = normalize_ai_response({"grade": 5, "maxgrade": 10, "feedback": "ok"})

        assert response.score == 5
        assert response.max_score == 10
        assert response.reasoning == "ok"
        assert response.confidence is None
        assert response.criteria == []

    def test_missing_score_is_zero(self):
        response = normalize_ai_response({"criteria": []})
        assert response.score == 0
        assert response.max_score is None

    def test_bad_entries_keep_positions(self):
        response = normalize_ai_response({
            "criteria": ["garbage", {"name": "Depth", "score": "lots"}],
        })

        assert len(response.criteria) == 2
        assert response.criteria[0].name == ""
        assert response.criteria[1].name == "Depth"
        assert response.criteria[1].score == 0

    def test_confidence_clamped(self):
        assert normalize_ai_response({"confidence": 3}).confidence == 1.0
        assert normalize_ai_response({"confidence": -1}).confidence == 0.0

    def test_criteria_as_mapping(self):
        response = normalize_ai_response({
            "criteria": {"Clarity": {"score": 4, "feedback": "fine"}, "Depth": 2},
        })

        assert [(c.name, c.score) for c in response.criteria] == [("Clarity", 4), ("Depth", 2)]
