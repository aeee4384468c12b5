"""Tests for interpreting raw model output."""

import json

import pytest

from app.exceptions import DEFAULT_DETECTED_TYPE, InvalidDocumentError, MalformedResponseError
from app.models.analysis import AnalysisResult
from app.services.response_interpreter import interpret

SAMPLE_RESULT = {
    "topics": [
        {
            "name": "Thermodynamics",
            "confidence": 92,
            "effort": "Medium",
            "reward": "High",
            "frequency": 7,
            "keyConcepts": ["First law", "Entropy"],
            "priority": "High",
        },
        {
            "name": "Heat Transfer",
            "confidence": 55,
            "effort": "Low",
            "reward": "High",
            "frequency": 3,
            "keyConcepts": [],
        },
    ],
    "summary": {"totalTopics": 2, "highPriorityCount": 1, "lowEffortHighReward": 1},
}


def fenced(payload: dict) -> str:
    return "Here is the analysis:\n```json\n" + json.dumps(payload) + "\n```\nGood luck!"


class TestInterpretSuccess:
    """Well-formed analysis payloads."""

    def test_fenced_json(self):
        result = interpret(fenced(SAMPLE_RESULT))
        assert isinstance(result, AnalysisResult)
        assert result.model_dump(mode="json", by_alias=True, exclude_none=True) == SAMPLE_RESULT

    def test_bare_json(self):
        result = interpret(json.dumps(SAMPLE_RESULT))
        assert result.summary.total_topics == 2
        assert result.topics[0].key_concepts == ["First law", "Entropy"]

    def test_fence_without_language_tag(self):
        raw = "```\n" + json.dumps(SAMPLE_RESULT) + "\n```"
        assert interpret(raw).topics[1].name == "Heat Transfer"

    def test_json_surrounded_by_prose(self):
        raw = "Sure! " + json.dumps(SAMPLE_RESULT) + " Let me know if you need more."
        assert len(interpret(raw).topics) == 2

    def test_missing_priority_is_not_filled_in(self):
        result = interpret(json.dumps(SAMPLE_RESULT))
        heat = result.topics[1]
        assert heat.priority is None
        assert heat.resolved_priority == "Low"

    def test_unsent_fields_are_not_dumped(self):
        result = interpret(json.dumps(SAMPLE_RESULT))
        dumped = result.model_dump(mode="json", by_alias=True, exclude_unset=True)
        assert dumped == SAMPLE_RESULT
        assert "priority" not in dumped["topics"][1]

        bare = {"name": "Optics", "confidence": 40, "effort": "High", "reward": "Low", "frequency": 1}
        topic = interpret(json.dumps({"topics": [bare]})).topics[0]
        assert topic.model_dump(mode="json", by_alias=True, exclude_unset=True) == bare

    def test_missing_summary(self):
        result = interpret(json.dumps({"topics": SAMPLE_RESULT["topics"]}))
        assert result.summary is None
        assert len(result.topics) == 2

    def test_fractional_confidence(self):
        payload = json.loads(json.dumps(SAMPLE_RESULT))
        payload["topics"][1]["confidence"] = 87.5
        result = interpret(json.dumps(payload))
        assert result.topics[1].confidence == 87.5
        assert result.topics[0].confidence == 92
        assert isinstance(result.topics[0].confidence, int)
        assert result.sorted_topics()[0].name == "Thermodynamics"

    def test_empty_topic_list(self):
        payload = {
            "topics": [],
            "summary": {"totalTopics": 0, "highPriorityCount": 0, "lowEffortHighReward": 0},
        }
        assert interpret(json.dumps(payload)).topics == []


class TestInterpretRejection:
    """The INVALID_DOCUMENT sentinel."""

    def test_rejection_with_detected_label(self):
        raw = fenced({
            "error": "INVALID_DOCUMENT",
            "reason": "The file appears to be a train ticket (detected: Train Ticket)",
        })
        with pytest.raises(InvalidDocumentError) as exc_info:
            interpret(raw)
        error = exc_info.value
        assert error.detected_type == "Train Ticket"
        assert "Train Ticket" in error.user_message
        assert "train ticket" in error.message

    def test_rejection_without_label_uses_default(self):
        raw = json.dumps({"error": "INVALID_DOCUMENT", "reason": "Not coursework."})
        with pytest.raises(InvalidDocumentError) as exc_info:
            interpret(raw)
        assert exc_info.value.detected_type == DEFAULT_DETECTED_TYPE

    def test_rejection_found_by_brace_recovery(self):
        raw = 'I cannot analyse this. {"error": "INVALID_DOCUMENT", "reason": "(detected: Invoice)"}'
        with pytest.raises(InvalidDocumentError) as exc_info:
            interpret(raw)
        assert exc_info.value.detected_type == "Invoice"

    def test_other_error_values_are_malformed(self):
        raw = json.dumps({"error": "SOMETHING_ELSE", "reason": "?"})
        with pytest.raises(MalformedResponseError):
            interpret(raw)


class TestInterpretMalformed:
    """Output that cannot become a result."""

    @pytest.mark.parametrize("raw", [None, "", "   \n"])
    def test_empty_response(self, raw):
        with pytest.raises(MalformedResponseError):
            interpret(raw)

    def test_not_json(self):
        with pytest.raises(MalformedResponseError):
            interpret("I'm sorry, I can't help with that.")

    def test_broken_json(self):
        with pytest.raises(MalformedResponseError):
            interpret('```json\n{"topics": [\n```')

    def test_wrong_shape(self):
        with pytest.raises(MalformedResponseError):
            interpret(json.dumps({"topics": "none"}))

    def test_out_of_range_confidence(self):
        payload = json.loads(json.dumps(SAMPLE_RESULT))
        payload["topics"][0]["confidence"] = 140
        with pytest.raises(MalformedResponseError):
            interpret(json.dumps(payload))

    def test_user_message(self):
        with pytest.raises(MalformedResponseError) as exc_info:
            interpret("nope")
        assert "expected format" in exc_info.value.user_message
