"""
Exam strategy analysis pipeline.

Runs the pre-analysis document gate, then sends the syllabus and past papers
to Gemini, falling back through the configured model list when a model is
overloaded:

1. Extract a text sample from both PDFs (concurrently, failures tolerated)
2. Keyword-density gate on the combined sample (no model call on failure)
3. Encode both PDFs as inline attachments (concurrently)
4. For each model: retry/timeout state machine, then response interpretation
5. All models exhausted: ModelsUnavailableError
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional

from google import genai
from google.genai import types

from app.config import ModelConfig, Settings, get_settings
from app.exceptions import (
    ExtractionFailure,
    FatalReason,
    InvalidDocumentError,
    MissingInputError,
    ModelFatalError,
    ModelsUnavailableError,
    ModelTransientError,
    PipelineError,
)
from app.models.analysis import AnalysisRequest, AnalysisResult, UploadedDocument
from app.services.gemini_client import get_gemini_client
from app.services.keyword_heuristics import density_check
from app.services.response_interpreter import interpret
from app.services.text_extractor import extract_text_async
from app.utils.retry import (
    ProgressCallback,
    invoke_with_retry,
    progress_ticker,
    report_progress,
)

logger = logging.getLogger(__name__)

STEP_EXTRACTING = "Extracting PDFs"
STEP_GENERATING = "Generating Priority Matrix"

# Two-phase persona: validate the documents first, analyze only if they pass
SYSTEM_INSTRUCTION = """You are a strict Academic Quality Controller. Your ONLY job is to analyze University Syllabi and Past Exam Papers.

PHASE 1: VALIDATION
First, scan the provided documents for academic context. Look for course codes, unit breakdowns, university names, or question patterns.
- IF the text appears to be a receipt, ticket, invoice, or random non-academic text: STOP.
- Return this EXACT JSON error (nothing else): {"error": "INVALID_DOCUMENT", "reason": "The file appears to be unrelated to academic coursework (detected: [Insert what you found, e.g., Train Ticket])."}

PHASE 2: ANALYSIS
Only if Phase 1 passes (documents are clearly syllabus or exam papers), proceed:
Map syllabus topics to exam questions. Identify "Low Effort, High Reward" topics (short topics that appear frequently).

For each topic, provide:
- Topic name
- Confidence score (0-100)
- Effort level (Low/Medium/High)
- Reward level (Low/Medium/High)
- Frequency count
- Key concepts (2-3 max)

Output ONLY valid JSON (no error field):
{
  "topics": [
    {
      "name": "Topic Name",
      "confidence": 92,
      "effort": "Low",
      "reward": "High",
      "frequency": 5,
      "keyConcepts": ["concept1", "concept2"],
      "priority": "High"
    }
  ],
  "summary": {
    "totalTopics": 10,
    "highPriorityCount": 3,
    "lowEffortHighReward": 2
  }
}"""


class StrategyOrchestrator:
    """Drives one analysis run from two uploads to an AnalysisResult.

    Args:
        settings: Validated application settings
        client: Gemini client built from the same settings
        sleep: Awaitable sleep used for fallback delays and retry backoff
        clock: Monotonic clock used for elapsed-time reporting
    """

    def __init__(
        self,
        settings: Settings,
        client: genai.Client,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._client = client
        self._sleep = sleep
        self._clock = clock

    @property
    def models(self) -> List[ModelConfig]:
        return list(self._settings.model_fallbacks)

    async def analyze_request(
        self,
        request: AnalysisRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnalysisResult:
        return await self.run(request.syllabus, request.past_papers, on_progress)

    async def run(
        self,
        syllabus: Optional[UploadedDocument],
        past_papers: Optional[UploadedDocument],
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnalysisResult:
        """
        Analyze a syllabus against past exam papers.

        Args:
            syllabus: Syllabus PDF
            past_papers: Past exam papers PDF
            on_progress: Optional callback receiving human-readable stage labels

        Returns:
            AnalysisResult produced by the first model that succeeds

        Raises:
            MissingInputError: Either document is absent (no work is done)
            InvalidDocumentError: The gate or the model rejected the documents
            ModelFatalError: Timeout, auth, quota, bad request or unknown failure
            ModelsUnavailableError: Every model in the fallback list was exhausted
            MalformedResponseError: The model output could not be parsed
        """
        if syllabus is None or past_papers is None:
            raise MissingInputError()

        started_at = self._clock()

        try:
            return await self._run(syllabus, past_papers, on_progress, started_at)
        except InvalidDocumentError:
            raise
        except PipelineError as e:
            logger.error(f"Analysis failed ({e.kind.value}): {e.message}")
            raise
        except Exception as e:
            logger.exception("Unexpected error while analyzing documents")
            raise ModelFatalError(str(e), reason=FatalReason.UNKNOWN) from e

    async def _run(
        self,
        syllabus: UploadedDocument,
        past_papers: UploadedDocument,
        on_progress: Optional[ProgressCallback],
        started_at: float,
    ) -> AnalysisResult:
        # Step 1: Extract text samples (a failed file contributes nothing)
        report_progress(on_progress, STEP_EXTRACTING)
        syllabus_text, papers_text = await asyncio.gather(
            self._sample_text(syllabus),
            self._sample_text(past_papers),
        )

        # Step 2: Hard gate - no model call for obviously unrelated uploads
        combined_text = (syllabus_text + "\n" + papers_text)[: self._settings.pipeline_combined_chars]
        assessment = density_check(combined_text)
        logger.info(
            f"Document gate: passed={assessment.passed} "
            f"distinct={assessment.distinct_keyword_count} "
            f"density={assessment.density_score:.2f}"
        )
        if not assessment.passed:
            raise InvalidDocumentError(
                "Uploaded file does not appear to be a valid Syllabus or Question Paper."
            )

        # Step 3: Inline attachments
        attachments = list(await asyncio.gather(
            self._encode(syllabus),
            self._encode(past_papers),
        ))

        # Step 4: Walk the fallback list
        models = self.models
        last_error: Optional[ModelTransientError] = None

        for index, model in enumerate(models):
            report_progress(on_progress, f"Analyzing documents with {model.label}...")
            report_progress(on_progress, STEP_GENERATING)

            try:
                async with progress_ticker(
                    on_progress,
                    STEP_GENERATING,
                    started_at,
                    interval_seconds=self._settings.progress_tick_seconds,
                    report_after_seconds=self._settings.progress_tick_after_seconds,
                    clock=self._clock,
                ):
                    raw_text = await invoke_with_retry(
                        lambda: self._generate(model, attachments),
                        max_attempts=self._settings.max_attempts,
                        on_progress=on_progress,
                        timeout_seconds=self._settings.request_timeout_seconds,
                        backoff_base_ms=self._settings.backoff_base_ms,
                        backoff_max_ms=self._settings.backoff_max_ms,
                        sleep=self._sleep,
                    )
            except ModelTransientError as e:
                last_error = e
                logger.warning(f"{model.name} unavailable: {e.message}")
                if index + 1 < len(models):
                    report_progress(on_progress, f"{model.label} is unavailable. Trying fallback model...")
                    await self._sleep(self._settings.fallback_delay_seconds)
                continue

            result = interpret(raw_text)

            total_time = int(self._clock() - started_at)
            logger.info(f"Analysis completed in {total_time} seconds using {model.name}")
            return result

        raise ModelsUnavailableError(
            f"All {len(models)} models are currently unavailable"
        ) from last_error

    async def _sample_text(self, document: UploadedDocument) -> str:
        try:
            return await extract_text_async(document.content, self._settings.pipeline_sample_chars)
        except ExtractionFailure as e:
            logger.warning(f"Text extraction failed for {document.filename}, using empty text: {e.message}")
            return ""

    async def _encode(self, document: UploadedDocument) -> types.Part:
        return types.Part.from_bytes(data=document.content, mime_type=document.media_type)

    async def _generate(self, model: ModelConfig, attachments: List[types.Part]) -> Optional[str]:
        config = types.GenerateContentConfig(
            system_instruction=SYSTEM_INSTRUCTION,
            temperature=model.temperature,
            top_p=model.top_p,
            top_k=model.top_k,
            max_output_tokens=model.max_output_tokens,
        )
        response = await self._client.aio.models.generate_content(
            model=model.name,
            contents=attachments,
            config=config,
        )
        return response.text


def create_orchestrator(settings: Optional[Settings] = None) -> StrategyOrchestrator:
    """Build an orchestrator from settings, failing fast on bad configuration.

    Raises:
        ConfigurationError: If the API key is blank.
        pydantic.ValidationError: If settings cannot be loaded from the environment.
    """
    if settings is None:
        settings = get_settings()
    return StrategyOrchestrator(settings, get_gemini_client(settings))
