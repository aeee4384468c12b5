"""Soft document gate applied when a file is selected.

Each selected file is checked against a short text prefix. Files that look
academic are accepted straight away; the rest are held as pending until the
user either confirms them or cancels. Nothing here blocks the user for good:
a pending slot can always be confirmed or cleared.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from app.config import Settings
from app.exceptions import ExtractionFailure, MissingInputError
from app.models.analysis import AnalysisRequest, GateDecision, UploadedDocument
from app.services.keyword_heuristics import count_distinct_keywords, quick_check
from app.services.text_extractor import extract_text, extract_text_async

logger = logging.getLogger(__name__)

PDF_EXTENSION = ".pdf"
SLOTS: Tuple[str, ...] = ("syllabus", "past_papers")

WARNING_MESSAGE = (
    "This file doesn't look like a syllabus or exam paper. "
    "Do you want to use it anyway?"
)


class SlotState(str, Enum):
    EMPTY = "empty"
    PENDING = "pending"
    ACCEPTED = "accepted"


@dataclass
class _Slot:
    state: SlotState = SlotState.EMPTY
    document: Optional[UploadedDocument] = None


def has_pdf_extension(filename: Optional[str]) -> bool:
    return bool(filename) and filename.lower().endswith(PDF_EXTENSION)


def _fail_open(document: UploadedDocument, error: ExtractionFailure) -> GateDecision:
    # A file we cannot read is not evidence of a wrong file
    logger.warning(f"Quick check skipped for {document.filename}: {error.message}")
    return GateDecision(status="accepted", filename=document.filename)


def _decide(document: UploadedDocument, text: str, settings: Settings) -> GateDecision:
    prefix = text[: settings.quick_check_prefix_chars]
    matched = count_distinct_keywords(prefix).matched

    if quick_check(text, settings.quick_check_prefix_chars, settings.quick_check_min_keywords):
        return GateDecision(
            status="accepted",
            filename=document.filename,
            matched_keywords=matched,
        )

    logger.info(f"Quick check flagged {document.filename} ({len(matched)} keyword(s))")
    return GateDecision(
        status="warning",
        filename=document.filename,
        message=WARNING_MESSAGE,
        matched_keywords=matched,
    )


def check_document(document: UploadedDocument, settings: Settings) -> GateDecision:
    """Run the upload quick check on a single document.

    Args:
        document: The selected file
        settings: Provides the sample size, prefix length and keyword minimum

    Returns:
        GateDecision with status ``ignored`` (not a PDF), ``accepted`` or
        ``warning`` (user must confirm)
    """
    if not has_pdf_extension(document.filename):
        return GateDecision(status="ignored", filename=document.filename)

    try:
        text = extract_text(document.content, settings.upload_sample_chars)
    except ExtractionFailure as e:
        return _fail_open(document, e)

    return _decide(document, text, settings)


async def check_document_async(document: UploadedDocument, settings: Settings) -> GateDecision:
    """``check_document`` for request handlers; decoding yields between pages."""
    if not has_pdf_extension(document.filename):
        return GateDecision(status="ignored", filename=document.filename)

    try:
        text = await extract_text_async(document.content, settings.upload_sample_chars)
    except ExtractionFailure as e:
        return _fail_open(document, e)

    return _decide(document, text, settings)



class UploadGate:
    """Holds the syllabus and past-papers slots for one analysis session."""

    def __init__(self, settings: Settings):
        self._settings = settings
        self._slots: Dict[str, _Slot] = {slot: _Slot() for slot in SLOTS}

    def _slot(self, slot: str) -> _Slot:
        if slot not in self._slots:
            raise ValueError(f"Unknown slot '{slot}'. Must be one of: {', '.join(SLOTS)}")
        return self._slots[slot]

    def state(self, slot: str) -> SlotState:
        return self._slot(slot).state

    def document(self, slot: str) -> Optional[UploadedDocument]:
        """The accepted document in ``slot``, if any."""
        entry = self._slot(slot)
        return entry.document if entry.state is SlotState.ACCEPTED else None

    def select(self, slot: str, document: UploadedDocument) -> GateDecision:
        """Offer a file for ``slot``; non-PDF files leave the slot untouched."""
        entry = self._slot(slot)
        decision = check_document(document, self._settings)

        if decision.status == "ignored":
            return decision

        entry.document = document
        entry.state = SlotState.ACCEPTED if decision.status == "accepted" else SlotState.PENDING
        return decision

    def confirm(self, slot: str) -> UploadedDocument:
        """Accept the pending file as-is."""
        entry = self._slot(slot)
        if entry.state is not SlotState.PENDING or entry.document is None:
            raise ValueError(f"No pending file in slot '{slot}'")
        entry.state = SlotState.ACCEPTED
        return entry.document

    def cancel(self, slot: str) -> None:
        """Discard the pending file; the slot returns to empty."""
        entry = self._slot(slot)
        if entry.state is not SlotState.PENDING:
            raise ValueError(f"No pending file in slot '{slot}'")
        self.clear(slot)

    def clear(self, slot: Optional[str] = None) -> None:
        """Empty ``slot``, or every slot when omitted."""
        for name in ([slot] if slot is not None else list(SLOTS)):
            entry = self._slot(name)
            entry.state = SlotState.EMPTY
            entry.document = None

    def build_request(self) -> AnalysisRequest:
        """Both slots must hold accepted files."""
        syllabus = self.document("syllabus")
        past_papers = self.document("past_papers")
        if syllabus is None or past_papers is None:
            raise MissingInputError()
        return AnalysisRequest(syllabus=syllabus, past_papers=past_papers)
