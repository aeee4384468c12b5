"""Tests for the analysis pipeline orchestrator.

The Gemini client is mocked; PDFs are real in-memory documents.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.exceptions import (
    ExtractionFailure,
    FatalReason,
    InvalidDocumentError,
    MalformedResponseError,
    MissingInputError,
    ModelFatalError,
    ModelsUnavailableError,
)
from app.models.analysis import AnalysisRequest, UploadedDocument
from app.services.strategy_orchestrator import (
    STEP_EXTRACTING,
    STEP_GENERATING,
    SYSTEM_INSTRUCTION,
    StrategyOrchestrator,
)

SYLLABUS_TEXT = (
    "B.Tech Mechanical Engineering Course Syllabus Semester 5 "
    "Unit 1 Thermodynamics Unit 2 Heat Transfer Module credit assessment"
)
PAPERS_TEXT = (
    "University Exam Question Paper Semester 5 Marks 70 "
    "Question 1 explain the first law Question 2 entropy"
)
RECEIPT_TEXT = "Indian Railways e-ticket PNR 4521 fare total amount 450 INR thank you"

VALID_RESPONSE = json.dumps({
    "topics": [
        {
            "name": "Thermodynamics",
            "confidence": 92,
            "effort": "Medium",
            "reward": "High",
            "frequency": 5,
            "keyConcepts": ["First law"],
            "priority": "High",
        }
    ],
    "summary": {"totalTopics": 1, "highPriorityCount": 1, "lowEffortHighReward": 0},
})


def model_response(text):
    response = MagicMock()
    response.text = text
    return response


@pytest.fixture
def syllabus(make_pdf):
    return UploadedDocument(content=make_pdf(SYLLABUS_TEXT), media_type="application/pdf", filename="syllabus.pdf")


@pytest.fixture
def past_papers(make_pdf):
    return UploadedDocument(content=make_pdf(PAPERS_TEXT), media_type="application/pdf", filename="papers.pdf")


@pytest.fixture
def receipt(make_pdf):
    return UploadedDocument(content=make_pdf(RECEIPT_TEXT), media_type="application/pdf", filename="ticket.pdf")


@pytest.fixture
def client():
    mock_client = MagicMock()
    mock_client.aio.models.generate_content = AsyncMock(
        return_value=model_response(VALID_RESPONSE)
    )
    return mock_client


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def orchestrator(test_settings, client, sleep):
    return StrategyOrchestrator(test_settings, client, sleep=sleep)


def sleep_delays(sleep):
    return [c.args[0] for c in sleep.await_args_list]


class TestSuccessfulRun:
    """Happy path."""

    @pytest.mark.asyncio
    async def test_returns_result(self, orchestrator, syllabus, past_papers):
        result = await orchestrator.run(syllabus, past_papers)
        assert result.topics[0].name == "Thermodynamics"
        assert result.summary.total_topics == 1

    @pytest.mark.asyncio
    async def test_progress_labels(self, orchestrator, syllabus, past_papers):
        progress = []
        await orchestrator.run(syllabus, past_papers, on_progress=progress.append)
        assert progress == [
            STEP_EXTRACTING,
            "Analyzing documents with Gemini 3 Flash...",
            STEP_GENERATING,
        ]

    @pytest.mark.asyncio
    async def test_request_contents(self, orchestrator, client, syllabus, past_papers):
        await orchestrator.run(syllabus, past_papers)

        kwargs = client.aio.models.generate_content.await_args.kwargs
        assert kwargs["model"] == "gemini-3-flash-preview"
        contents = kwargs["contents"]
        assert len(contents) == 2
        assert contents[0].inline_data.data == syllabus.content
        assert contents[1].inline_data.data == past_papers.content
        assert contents[0].inline_data.mime_type == "application/pdf"

        config = kwargs["config"]
        assert config.system_instruction == SYSTEM_INSTRUCTION
        assert config.temperature == 0.7
        assert config.top_p == 0.95
        assert config.top_k == 40
        assert config.max_output_tokens == 4096

    @pytest.mark.asyncio
    async def test_analyze_request(self, orchestrator, syllabus, past_papers):
        request = AnalysisRequest(syllabus=syllabus, past_papers=past_papers)
        result = await orchestrator.analyze_request(request)
        assert len(result.topics) == 1

    @pytest.mark.asyncio
    async def test_extraction_failure_is_tolerated(self, orchestrator, client, syllabus, past_papers):
        """A file that cannot be decoded contributes empty text to the gate."""

        async def fake_extract(content, max_chars):
            if content == syllabus.content:
                raise ExtractionFailure("Failed to open PDF")
            return "syllabus semester unit exam marks question paper"

        with patch(
            "app.services.strategy_orchestrator.extract_text_async",
            side_effect=fake_extract,
        ):
            result = await orchestrator.run(syllabus, past_papers)

        assert len(result.topics) == 1
        client.aio.models.generate_content.assert_awaited_once()


class TestDocumentGate:
    """Pre-analysis keyword-density gate."""

    @pytest.mark.asyncio
    async def test_unrelated_documents_never_reach_the_model(self, orchestrator, client, receipt):
        with pytest.raises(InvalidDocumentError) as exc_info:
            await orchestrator.run(receipt, receipt)

        assert exc_info.value.detected_type is None
        client.aio.models.generate_content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_both_extractions_failing_rejects(self, orchestrator, client, syllabus, past_papers):
        with patch(
            "app.services.strategy_orchestrator.extract_text_async",
            side_effect=ExtractionFailure("corrupt"),
        ):
            with pytest.raises(InvalidDocumentError):
                await orchestrator.run(syllabus, past_papers)

        client.aio.models.generate_content.assert_not_awaited()


class TestMissingInput:
    """Both documents are required."""

    @pytest.mark.asyncio
    async def test_missing_syllabus(self, orchestrator, client, past_papers):
        with pytest.raises(MissingInputError):
            await orchestrator.run(None, past_papers)
        client.aio.models.generate_content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_past_papers(self, orchestrator, syllabus):
        progress = []
        with pytest.raises(MissingInputError):
            await orchestrator.run(syllabus, None, on_progress=progress.append)
        assert progress == []


class TestRetryAndFallback:
    """Retry state machine and model fallback."""

    @pytest.mark.asyncio
    async def test_transient_then_success_on_same_model(
        self, orchestrator, client, sleep, syllabus, past_papers
    ):
        client.aio.models.generate_content.side_effect = [
            Exception("503 Service Unavailable"),
            Exception("503 Service Unavailable"),
            model_response(VALID_RESPONSE),
        ]
        progress = []

        result = await orchestrator.run(syllabus, past_papers, on_progress=progress.append)

        assert len(result.topics) == 1
        assert client.aio.models.generate_content.await_count == 3
        assert sleep_delays(sleep) == [1.0, 2.0]
        assert "Retrying... (Attempt 2/3)" in progress
        assert "Retrying... (Attempt 3/3)" in progress

    @pytest.mark.asyncio
    async def test_falls_back_to_next_model(self, orchestrator, client, sleep, syllabus, past_papers):
        overloaded = Exception("The model is overloaded. 503 UNAVAILABLE")
        client.aio.models.generate_content.side_effect = [
            overloaded,
            overloaded,
            overloaded,
            model_response(VALID_RESPONSE),
        ]
        progress = []

        result = await orchestrator.run(syllabus, past_papers, on_progress=progress.append)

        assert len(result.topics) == 1
        models_called = [
            c.kwargs["model"] for c in client.aio.models.generate_content.await_args_list
        ]
        assert models_called == ["gemini-3-flash-preview"] * 3 + ["gemini-1.5-flash"]
        assert "Gemini 3 Flash is unavailable. Trying fallback model..." in progress
        assert "Analyzing documents with Gemini 1.5 Flash..." in progress
        assert sleep_delays(sleep) == [1.0, 2.0, 2.0]

    @pytest.mark.asyncio
    async def test_all_models_exhausted(self, orchestrator, client, sleep, syllabus, past_papers):
        client.aio.models.generate_content.side_effect = Exception("429 Too Many Requests")
        progress = []

        with pytest.raises(ModelsUnavailableError):
            await orchestrator.run(syllabus, past_papers, on_progress=progress.append)

        assert client.aio.models.generate_content.await_count == 6
        # Fallback message only when a next model exists
        assert progress.count("Gemini 3 Flash is unavailable. Trying fallback model...") == 1
        assert not any(m.startswith("Gemini 1.5 Flash is unavailable") for m in progress)
        assert sleep_delays(sleep) == [1.0, 2.0, 2.0, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_fatal_error_aborts_without_fallback(
        self, orchestrator, client, sleep, syllabus, past_papers
    ):
        client.aio.models.generate_content.side_effect = Exception("401 API key not authorized")

        with pytest.raises(ModelFatalError) as exc_info:
            await orchestrator.run(syllabus, past_papers)

        assert exc_info.value.reason is FatalReason.AUTH
        assert client.aio.models.generate_content.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_quota_error_is_fatal(self, orchestrator, client, syllabus, past_papers):
        client.aio.models.generate_content.side_effect = Exception("Resource exhausted: quota exceeded")

        with pytest.raises(ModelFatalError) as exc_info:
            await orchestrator.run(syllabus, past_papers)

        assert exc_info.value.reason is FatalReason.QUOTA
        assert "quota" in exc_info.value.user_message.lower()


class TestModelOutput:
    """Interpretation of what the model returns."""

    @pytest.mark.asyncio
    async def test_model_rejection(self, orchestrator, client, syllabus, past_papers):
        client.aio.models.generate_content.return_value = model_response(
            '```json\n{"error": "INVALID_DOCUMENT", "reason": '
            '"The file appears to be unrelated to academic coursework (detected: Train Ticket)."}\n```'
        )

        with pytest.raises(InvalidDocumentError) as exc_info:
            await orchestrator.run(syllabus, past_papers)

        assert exc_info.value.detected_type == "Train Ticket"
        assert client.aio.models.generate_content.await_count == 1

    @pytest.mark.asyncio
    async def test_malformed_output_does_not_fall_back(self, orchestrator, client, syllabus, past_papers):
        client.aio.models.generate_content.return_value = model_response("Sorry, I cannot do that.")

        with pytest.raises(MalformedResponseError):
            await orchestrator.run(syllabus, past_papers)

        assert client.aio.models.generate_content.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_output_is_malformed(self, orchestrator, client, syllabus, past_papers):
        client.aio.models.generate_content.return_value = model_response(None)

        with pytest.raises(MalformedResponseError):
            await orchestrator.run(syllabus, past_papers)

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self, orchestrator, syllabus, past_papers):
        with patch(
            "app.services.strategy_orchestrator.density_check",
            side_effect=RuntimeError("boom"),
        ):
            with pytest.raises(ModelFatalError) as exc_info:
                await orchestrator.run(syllabus, past_papers)

        assert exc_info.value.reason is FatalReason.UNKNOWN
        assert isinstance(exc_info.value.__cause__, RuntimeError)
