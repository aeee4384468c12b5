"""Gemini API client construction.

The client is built from an explicit Settings object at startup and handed
to the orchestrator; nothing reads the API key lazily on first use.
Uses the modern google-genai SDK (not google.generativeai).
"""

from typing import Optional

from google import genai

from app.config import Settings, get_settings
from app.exceptions import ConfigurationError


def get_gemini_client(settings: Optional[Settings] = None) -> genai.Client:
    """Initialize and return a Gemini API client.

    Args:
        settings: Application settings; loaded from the environment if omitted.

    Returns:
        genai.Client: Initialized Gemini client ready for API calls.

    Raises:
        ConfigurationError: If the API key is blank.
        pydantic.ValidationError: If settings cannot be loaded from the environment.

    Example:
        >>> client = get_gemini_client()
        >>> response = await client.aio.models.generate_content(
        ...     model="gemini-3-flash-preview",
        ...     contents=["Hello world"]
        ... )
    """
    if settings is None:
        settings = get_settings()

    # Settings validation already rejects blank keys; this covers
    # Settings objects built without validation
    if not settings.gemini_api_key or not settings.gemini_api_key.strip():
        raise ConfigurationError(
            "GEMINI_API_KEY not set in environment. "
            "Please set this variable in your .env file or environment."
        )

    return genai.Client(api_key=settings.gemini_api_key)
