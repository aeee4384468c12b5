"""
Bounded PDF text-layer extraction.

Reads the embedded text layer page by page (PyMuPDF) and stops as soon as the
character budget is met. A document with no text layer at all (scanned or
image-only) is an extraction failure; nothing here performs OCR.
"""

import asyncio
from typing import Iterator

import fitz

from app.exceptions import ExtractionFailure


def _page_text(page: fitz.Page) -> str:
    """Join the page's positioned word fragments in reading order."""
    words = page.get_text("words", sort=True)
    return " ".join(word[4] for word in words if word[4])


def _open(content: bytes) -> fitz.Document:
    if not content:
        raise ExtractionFailure("Cannot extract text from an empty file")
    try:
        doc = fitz.open(stream=content, filetype="pdf")
    except Exception as e:
        raise ExtractionFailure(f"Failed to open PDF: {e}") from e
    if doc.needs_pass:
        doc.close()
        raise ExtractionFailure("PDF is encrypted")
    return doc


def _iter_pages(doc: fitz.Document) -> Iterator[str]:
    """Yield each page's text plus trailing newline, wrapping decoder faults."""
    for page_number in range(doc.page_count):
        try:
            yield _page_text(doc[page_number]) + "\n"
        except Exception as e:
            raise ExtractionFailure(
                f"Failed to decode page {page_number + 1}: {e}"
            ) from e


def _finish(text: str, max_chars: int, exhausted: bool) -> str:
    if exhausted and not text.strip():
        raise ExtractionFailure("No text layer found (scanned or image-only PDF)")
    return text[:max_chars]


def extract_text(content: bytes, max_chars: int = 5000) -> str:
    """
    Extract at most ``max_chars`` characters of text from a PDF.

    Pages are decoded in order starting from page 1; each page contributes
    its text followed by a newline. Decoding stops once the accumulated
    text reaches the budget.

    Args:
        content: Raw PDF bytes
        max_chars: Character budget

    Returns:
        Extracted text, truncated to exactly ``max_chars``

    Raises:
        ExtractionFailure: If the document cannot be opened or decoded, or
            has no text layer at all
    """
    if max_chars <= 0:
        return ""

    text = ""
    with _open(content) as doc:
        for page_text in _iter_pages(doc):
            text += page_text
            if len(text) >= max_chars:
                return _finish(text, max_chars, exhausted=False)
    return _finish(text, max_chars, exhausted=True)


async def extract_text_async(content: bytes, max_chars: int = 5000) -> str:
    """Cooperative variant of ``extract_text``.

    Yields to the event loop between pages so that extracting two files
    with ``asyncio.gather`` interleaves on the single loop.
    """
    if max_chars <= 0:
        return ""

    text = ""
    with _open(content) as doc:
        for page_text in _iter_pages(doc):
            text += page_text
            if len(text) >= max_chars:
                return _finish(text, max_chars, exhausted=False)
            await asyncio.sleep(0)
    return _finish(text, max_chars, exhausted=True)
