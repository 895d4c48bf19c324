"""
Report generation errors.

Each class carries the message shown to the user when all attempts are
exhausted; the last underlying exception is chained as __cause__.
"""

from __future__ import annotations


class ReportGenerationError(Exception):
    """Generic report failure after retries."""

    default_message = "Failed to generate or parse the analysis report. Please try again."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class ReportPayloadTooLargeError(ReportGenerationError):
    """The request (usually an attached image) was rejected as too large."""

    default_message = (
        "Connection failed. The image payload is too large. "
        "Please try using a smaller image."
    )


class ReportParseError(ReportGenerationError):
    """The model kept answering with something that is not valid JSON."""

    default_message = (
        "Failed to parse the doctor's report. "
        "The AI response was not valid JSON."
    )
