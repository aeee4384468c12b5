"""Parse raw Gemini output into an AnalysisResult.

The model either returns the analysis JSON (often wrapped in a markdown code
fence) or a rejection payload ``{"error": "INVALID_DOCUMENT", "reason": ...}``.
A rejection is surfaced as ``InvalidDocumentError``, never as a parse failure.
"""

import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from app.exceptions import (
    DEFAULT_DETECTED_TYPE,
    InvalidDocumentError,
    MalformedResponseError,
)
from app.models.analysis import AnalysisResult

logger = logging.getLogger(__name__)

REJECTION_SENTINEL = "INVALID_DOCUMENT"
DEFAULT_REJECTION_REASON = "The file appears to be unrelated to academic coursework."

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_BRACE_SPAN = re.compile(r"\{[\s\S]*\}")
_DETECTED_LABEL = re.compile(r"detected:\s*([^)]+)")


def _detected_type(reason: str) -> str:
    match = _DETECTED_LABEL.search(reason)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return DEFAULT_DETECTED_TYPE


def _raise_if_rejection(parsed: Any) -> None:
    """Raise InvalidDocumentError when the model returned the rejection sentinel."""
    if isinstance(parsed, dict) and parsed.get("error") == REJECTION_SENTINEL:
        reason = parsed.get("reason") or DEFAULT_REJECTION_REASON
        detected = _detected_type(str(reason))
        logger.info(f"Model rejected the documents (detected: {detected})")
        raise InvalidDocumentError(str(reason), detected_type=detected)


def _loads(candidate: str) -> Optional[Any]:
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None


def interpret(raw_text: Optional[str]) -> AnalysisResult:
    """Turn the model's raw text into an AnalysisResult.

    Steps:
    1. Use the body of the first fenced code block, else the whole text
    2. Strict JSON parse
    3. If that fails, parse the outermost brace-delimited span
    4. Check each parsed value for the rejection sentinel
    5. Validate the shape without adding anything the model did not send

    Args:
        raw_text: Text returned by the model

    Returns:
        AnalysisResult exactly as the model described it

    Raises:
        InvalidDocumentError: The model reported the documents as non-academic
        MalformedResponseError: No parse attempt produced a valid result
    """
    if not raw_text or not raw_text.strip():
        raise MalformedResponseError("Gemini API returned empty response")

    candidate = raw_text
    fenced = _FENCED_BLOCK.search(raw_text)
    if fenced:
        candidate = fenced.group(1)
    candidate = candidate.strip()

    parsed = _loads(candidate)
    if parsed is None:
        span = _BRACE_SPAN.search(candidate)
        if span:
            parsed = _loads(span.group(0))
        if parsed is None:
            raise MalformedResponseError(
                "Failed to parse JSON response. "
                "The AI response may not be in the correct format."
            )

    _raise_if_rejection(parsed)

    try:
        return AnalysisResult.model_validate(parsed)
    except ValidationError as e:
        raise MalformedResponseError(
            f"AI response does not match the expected structure: {e.error_count()} error(s)"
        ) from e
