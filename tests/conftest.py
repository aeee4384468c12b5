"""Shared fixtures: in-memory PDFs and test settings."""

from typing import Callable

import fitz
import pytest

from app.config import ModelConfig, Settings

WORDS_PER_LINE = 10


def build_pdf(*pages: str) -> bytes:
    """Build a PDF with one page per string, wrapped into short lines."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        words = text.split()
        lines = [
            " ".join(words[i:i + WORDS_PER_LINE])
            for i in range(0, len(words), WORDS_PER_LINE)
        ]
        if lines:
            page.insert_text((72, 72), "\n".join(lines), fontsize=10)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def make_pdf() -> Callable[..., bytes]:
    """Factory fixture returning PDF bytes for the given page texts."""
    return build_pdf


@pytest.fixture
def test_settings() -> Settings:
    """Settings with two fast models and no real delays."""
    return Settings(
        gemini_api_key="test-gemini-api-key",
        model_fallbacks=[
            ModelConfig(name="gemini-3-flash-preview", label="Gemini 3 Flash"),
            ModelConfig(name="gemini-1.5-flash", label="Gemini 1.5 Flash"),
        ],
        request_timeout_seconds=5.0,
        progress_tick_seconds=60.0,
    )


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set GEMINI_API_KEY and reset the cached settings around the test."""
    from app.config import get_settings

    monkeypatch.setenv("GEMINI_API_KEY", "test-gemini-api-key")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
