"""Error taxonomy for the analysis pipeline.

Every error is constructed where the failure happens and carries a
``kind`` the HTTP layer and CLI can branch on. Only ``InvalidDocumentError``
is shown to the user with its own wording; the rest map to the fixed
messages in ``USER_MESSAGES``.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of pipeline failure kinds."""

    EXTRACTION_FAILURE = "extraction_failure"
    INVALID_DOCUMENT = "invalid_document"
    MODEL_FATAL = "model_fatal"
    MODEL_TRANSIENT = "model_transient"
    MODELS_UNAVAILABLE = "models_unavailable"
    MALFORMED_RESPONSE = "malformed_response"
    MISSING_INPUT = "missing_input"


class FatalReason(str, Enum):
    """Sub-kinds of a non-retryable model failure."""

    AUTH = "auth"
    QUOTA = "quota"
    TIMEOUT = "timeout"
    INVALID_REQUEST = "invalid_request"
    UNKNOWN = "unknown"


DEFAULT_DETECTED_TYPE = "non-academic document"

USER_MESSAGES = {
    FatalReason.TIMEOUT: (
        "Request timeout: Analysis is taking longer than expected. "
        "Please try again with smaller PDFs."
    ),
    FatalReason.QUOTA: "API quota exceeded. Please try again later.",
    FatalReason.AUTH: "Invalid API key or request. Please check your configuration.",
    FatalReason.INVALID_REQUEST: "Invalid API key or request. Please check your configuration.",
    ErrorKind.MODEL_TRANSIENT: (
        "The AI model is currently experiencing high demand. "
        "Please wait a moment and try again."
    ),
    ErrorKind.MODELS_UNAVAILABLE: (
        "All AI models are currently unavailable due to high demand. "
        "Please try again in a few minutes."
    ),
    ErrorKind.MALFORMED_RESPONSE: (
        "Failed to parse the AI response. The response was not in the expected format."
    ),
    ErrorKind.MISSING_INPUT: "Please upload both syllabus and past year question papers",
}


class PipelineError(Exception):
    """Base class of every error the analysis pipeline surfaces."""

    kind: ErrorKind

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message


class ExtractionFailure(PipelineError):
    """The PDF text layer could not be decoded."""

    kind = ErrorKind.EXTRACTION_FAILURE


class InvalidDocumentError(PipelineError):
    """An upload was judged non-academic, by a gate or by the model itself.

    Attributes:
        detected_type: Label of what the document looks like, when known
            (e.g. "Train Ticket").
    """

    kind = ErrorKind.INVALID_DOCUMENT

    def __init__(self, message: str, detected_type: Optional[str] = None):
        self.detected_type = detected_type
        label = detected_type or "non-academic file"
        super().__init__(
            message,
            user_message=(
                f"Oops! That looks like a {label}. "
                "Please upload a valid Syllabus or Past Question Papers."
            ),
        )


class ModelFatalError(PipelineError):
    """Model failure that must not be retried or routed to another model."""

    kind = ErrorKind.MODEL_FATAL

    def __init__(self, message: str, reason: FatalReason = FatalReason.UNKNOWN):
        self.reason = reason
        user_message = USER_MESSAGES.get(reason) or f"Failed to analyze documents: {message}"
        super().__init__(message, user_message=user_message)


class ModelTransientError(PipelineError):
    """Retryable model failure (rate limit, overload) that outlived its retries."""

    kind = ErrorKind.MODEL_TRANSIENT

    def __init__(self, message: str):
        super().__init__(message, user_message=USER_MESSAGES[ErrorKind.MODEL_TRANSIENT])


class ModelsUnavailableError(PipelineError):
    """Every model in the fallback list was exhausted."""

    kind = ErrorKind.MODELS_UNAVAILABLE

    def __init__(self, message: str = "All models are currently unavailable"):
        super().__init__(message, user_message=USER_MESSAGES[ErrorKind.MODELS_UNAVAILABLE])


class MalformedResponseError(PipelineError):
    """The model output could not be parsed into an analysis result."""

    kind = ErrorKind.MALFORMED_RESPONSE

    def __init__(self, message: str):
        super().__init__(message, user_message=USER_MESSAGES[ErrorKind.MALFORMED_RESPONSE])


class MissingInputError(PipelineError):
    """A run was requested without both documents."""

    kind = ErrorKind.MISSING_INPUT

    def __init__(self, message: str = USER_MESSAGES[ErrorKind.MISSING_INPUT]):
        super().__init__(message)


class ConfigurationError(Exception):
    """Startup configuration is unusable (e.g. no API key)."""
