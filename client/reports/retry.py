"""
Retry policy helpers for report generation.

Purpose:
- Centralize the attempt limit and linear backoff
- Classify the final failure into the error the user sees

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum

from constants import (
    REPORT_MALFORMED_JSON_MARKERS,
    REPORT_MAX_ATTEMPTS,
    REPORT_OVERSIZED_MARKERS,
    retry_delay_ms,
)
from reports.errors import (
    ReportGenerationError,
    ReportParseError,
    ReportPayloadTooLargeError,
)


# =============================================================================
# Failure Types
# =============================================================================

class FailureType(str, Enum):
    """
    Classification of the last failure once attempts are exhausted.

    OVERSIZED_PAYLOAD:
        The provider rejected or crashed on the request (RPC failure,
        HTTP 500 or 413). Almost always an image that is too large.

    MALFORMED_JSON:
        The reply could not be parsed as a JSON report.

    GENERIC:
        Anything else (empty reply, network error, auth error).

    Notes:
    - Every failure type is retried identically; classification only
      selects the final error.
    """

    OVERSIZED_PAYLOAD = "oversized_payload"
    MALFORMED_JSON = "malformed_json"
    GENERIC = "generic"


# =============================================================================
# Retry State
# =============================================================================

@dataclass(frozen=True)
class RetryAttempt:
    """
    Immutable count of failed attempts.

    attempt == 0 before the first call; attempt == N after N failures.
    """
    attempt: int


def reset_attempt() -> RetryAttempt:
    """Returns a fresh retry attempt counter."""
    return RetryAttempt(attempt=0)


def next_attempt(current: RetryAttempt) -> RetryAttempt:
    """Record one more failure."""
    return RetryAttempt(attempt=current.attempt + 1)


# =============================================================================
# Policy
# =============================================================================

def should_retry(attempt: RetryAttempt, *, max_attempts: int = REPORT_MAX_ATTEMPTS) -> bool:
    """
    Returns True if another call is allowed.

    attempt = number of failed calls so far
    """
    return attempt.attempt < max_attempts


def get_retry_delay_ms(attempt: RetryAttempt) -> int:
    """Delay before the next call: 2000 ms times the failures so far."""
    return retry_delay_ms(attempt.attempt)


# =============================================================================
# Classification
# =============================================================================

def failure_text(exc: BaseException) -> str:
    """Text the classification markers are matched against."""
    return f"{type(exc).__name__}: {exc}"


def classify_failure(exc: BaseException) -> FailureType:
    """
    Classify the last failure.

    A JSON decode error is always MALFORMED_JSON. Otherwise oversized
    markers are checked before malformed-JSON markers.
    """
    if isinstance(exc, json.JSONDecodeError):
        return FailureType.MALFORMED_JSON

    text = failure_text(exc)
    if any(marker in text for marker in REPORT_OVERSIZED_MARKERS):
        return FailureType.OVERSIZED_PAYLOAD
    if any(marker in text for marker in REPORT_MALFORMED_JSON_MARKERS):
        return FailureType.MALFORMED_JSON
    return FailureType.GENERIC


def final_error(exc: BaseException) -> ReportGenerationError:
    """User-facing error for the last failure, with exc chained."""
    failure = classify_failure(exc)
    error: ReportGenerationError
    if failure is FailureType.OVERSIZED_PAYLOAD:
        error = ReportPayloadTooLargeError()
    elif failure is FailureType.MALFORMED_JSON:
        error = ReportParseError()
    else:
        error = ReportGenerationError()
    error.__cause__ = exc
    return error
