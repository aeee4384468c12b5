"""Retry logic with exponential backoff for Gemini calls.

This module is the only place that reads raw provider error text. It
classifies failures as fatal or transient, runs a single model call through
bounded retries with a per-attempt timeout, and provides the scoped
elapsed-time progress ticker used while a call is in flight.
"""

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Tuple

from app.exceptions import (
    FatalReason,
    ModelFatalError,
    ModelTransientError,
    PipelineError,
)

# Configure logging
logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]
SleepFunc = Callable[[float], Awaitable[Any]]

# Substrings that abort immediately, checked first and in order
FATAL_MARKERS: Tuple[Tuple[str, FatalReason], ...] = (
    ("timeout", FatalReason.TIMEOUT),
    ("invalid", FatalReason.INVALID_REQUEST),
    ("quota", FatalReason.QUOTA),
    ("401", FatalReason.AUTH),
    ("403", FatalReason.AUTH),
)

# Substrings that make a failure eligible for retry
TRANSIENT_MARKERS: Tuple[str, ...] = (
    "503",
    "500",
    "429",
    "high demand",
    "currently experiencing",
)

# Retry configuration
MAX_ATTEMPTS = 3
BASE_DELAY_MS = 1000
MAX_DELAY_MS = 10000
REQUEST_TIMEOUT_SECONDS = 120.0


class ErrorClass(str, Enum):
    FATAL = "fatal"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class Classification:
    """How a provider failure should be handled."""

    error_class: ErrorClass
    reason: Optional[FatalReason] = None

    @property
    def is_transient(self) -> bool:
        return self.error_class is ErrorClass.TRANSIENT


def classify_model_error(exception: BaseException) -> Classification:
    """Classify a model-call failure by its status code and message text.

    Fatal markers win over transient ones. Anything unrecognised is fatal:
    unknown failure modes are not assumed to be recoverable.

    Args:
        exception: The exception raised by the model call

    Returns:
        Classification with a fatal reason when not transient
    """
    if isinstance(exception, asyncio.TimeoutError):
        return Classification(ErrorClass.FATAL, FatalReason.TIMEOUT)
    if isinstance(exception, ModelFatalError):
        return Classification(ErrorClass.FATAL, exception.reason)
    if isinstance(exception, ModelTransientError):
        return Classification(ErrorClass.TRANSIENT)

    status_code = _extract_status_code(exception)
    message = str(exception).lower()
    if status_code is not None:
        message = f"{status_code} {message}"

    for marker, reason in FATAL_MARKERS:
        if marker in message:
            return Classification(ErrorClass.FATAL, reason)

    for marker in TRANSIENT_MARKERS:
        if marker in message:
            return Classification(ErrorClass.TRANSIENT)

    return Classification(ErrorClass.FATAL, FatalReason.UNKNOWN)


def _extract_status_code(exception: BaseException) -> Optional[int]:
    """Extract an HTTP status code from an exception, if it carries one.

    Args:
        exception: Exception that may contain status code

    Returns:
        HTTP status code if found, None otherwise
    """
    # google-genai APIError exposes the HTTP status as ``code``
    code = getattr(exception, "code", None)
    if isinstance(code, int):
        return code

    status_code = getattr(exception, "status_code", None)
    if isinstance(status_code, int):
        return status_code

    response = getattr(exception, "response", None)
    if response is not None:
        status_code = getattr(response, "status_code", None)
        if isinstance(status_code, int):
            return status_code

    return None


def backoff_delay_ms(
    attempt: int,
    base_ms: int = BASE_DELAY_MS,
    max_ms: int = MAX_DELAY_MS,
) -> int:
    """Delay before ``attempt`` (2-based): ``min(base * 2^(attempt-2), max)``."""
    if attempt < 2:
        return 0
    return min(base_ms * (2 ** (attempt - 2)), max_ms)


def report_progress(on_progress: Optional[ProgressCallback], message: str) -> None:
    if on_progress is not None:
        on_progress(message)


async def invoke_with_retry(
    call: Callable[[], Awaitable[Any]],
    max_attempts: int = MAX_ATTEMPTS,
    on_progress: Optional[ProgressCallback] = None,
    timeout_seconds: float = REQUEST_TIMEOUT_SECONDS,
    backoff_base_ms: int = BASE_DELAY_MS,
    backoff_max_ms: int = MAX_DELAY_MS,
    sleep: SleepFunc = asyncio.sleep,
) -> Any:
    """Run one model call with bounded retries.

    Each attempt is raced against ``timeout_seconds``; a timeout is fatal.
    Fatal failures raise after the attempt that produced them. Transient
    failures are retried after an exponential backoff, announced through
    ``on_progress`` before waiting.

    Args:
        call: Zero-argument coroutine factory performing the model request
        max_attempts: Total attempts allowed (default: 3)
        on_progress: Optional progress callback
        timeout_seconds: Per-attempt wall-clock timeout
        backoff_base_ms: Base backoff delay
        backoff_max_ms: Backoff ceiling
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Whatever ``call`` returns on the first successful attempt

    Raises:
        ModelFatalError: On timeout or any non-retryable failure
        ModelTransientError: After ``max_attempts`` transient failures
    """
    last_exception: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        if attempt > 1:
            delay_ms = backoff_delay_ms(attempt, backoff_base_ms, backoff_max_ms)
            report_progress(on_progress, f"Retrying... (Attempt {attempt}/{max_attempts})")
            await sleep(delay_ms / 1000)

        try:
            return await asyncio.wait_for(call(), timeout=timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.warning(f"Model call timed out after {timeout_seconds}s (attempt {attempt})")
            raise ModelFatalError(
                f"Request timeout after {timeout_seconds}s",
                reason=FatalReason.TIMEOUT,
            ) from e
        except PipelineError:
            raise
        except Exception as e:
            classification = classify_model_error(e)
            if not classification.is_transient:
                logger.warning(
                    f"Model call failed with non-retryable error "
                    f"({classification.reason.value if classification.reason else 'unknown'}): {e}"
                )
                raise ModelFatalError(
                    str(e), reason=classification.reason or FatalReason.UNKNOWN
                ) from e

            last_exception = e
            logger.warning(f"Model call attempt {attempt}/{max_attempts} failed: {e}")

    logger.error(f"Model call failed after {max_attempts} attempts: {last_exception}")
    raise ModelTransientError(
        f"Model unavailable after {max_attempts} attempts: {last_exception}"
    ) from last_exception


@contextlib.asynccontextmanager
async def progress_ticker(
    on_progress: Optional[ProgressCallback],
    label: str,
    started_at: float,
    interval_seconds: float = 5.0,
    report_after_seconds: float = 10.0,
    clock: Callable[[], float] = time.monotonic,
) -> AsyncIterator[None]:
    """Report ``"<label>... (<n>s)"`` every ``interval_seconds`` while open.

    The ticker task is cancelled when the block exits, however it exits.
    """
    if on_progress is None:
        yield
        return

    async def _tick() -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            elapsed = int(clock() - started_at)
            if elapsed > report_after_seconds:
                on_progress(f"{label}... ({elapsed}s)")

    task = asyncio.create_task(_tick())
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
