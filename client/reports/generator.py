"""
Report generator: prompt parts -> model reply -> parsed JSON report.

Design notes:
- One request per attempt, non-streaming; a report is useless until the
  whole JSON document has arrived.
- Up to REPORT_MAX_ATTEMPTS calls with linear backoff. Every failure
  (transport error, empty reply, unparseable JSON) is retried the same way.
- Only the last failure is classified into the error raised to the caller.
- The generator does NOT validate the report schema; callers get the
  decoded JSON object as-is.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence, Union

from constants import REPORT_IMAGE_MIME_TYPE, REPORT_TEMPERATURE
from observability.logger import log_event, now_ms
from observability.metrics import timed
from reports.errors import ReportGenerationError
from reports.json_extract import extract_json_text
from reports.prompts import JSON_ONLY_INSTRUCTION
from reports.retry import (
    failure_text,
    final_error,
    get_retry_delay_ms,
    next_attempt,
    reset_attempt,
    should_retry,
)


@dataclass(frozen=True)
class ImagePart:
    """Base64 image attached to a prompt."""
    data: str
    mime_type: str = REPORT_IMAGE_MIME_TYPE

    def to_content(self) -> dict[str, Any]:
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{self.mime_type};base64,{self.data}"},
        }


PromptPart = Union[str, ImagePart]


def build_content(parts: Sequence[PromptPart]) -> list[dict[str, Any]]:
    """Convert prompt parts into chat message content, order preserved."""
    content: list[dict[str, Any]] = []
    for part in parts:
        if isinstance(part, ImagePart):
            content.append(part.to_content())
        else:
            content.append({"type": "text", "text": part})
    return content


class ReportGenerator:
    """
    Concrete report generator over an OpenAI-compatible async client.

    Args:
        client:
            openai.AsyncOpenAI (or anything with the same
            chat.completions.create coroutine).
        model:
            Model identifier string.
        sleep:
            Awaitable delay, replaceable in tests.
    """

    def __init__(
        self,
        *,
        client: Any,
        model: str,
        temperature: float = REPORT_TEMPERATURE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature
        self._sleep = sleep

    async def generate_and_parse(
        self,
        parts: Sequence[PromptPart],
        *,
        kind: str = "report",
    ) -> dict[str, Any]:
        """
        Request a JSON report and decode it.

        Raises:
            ReportPayloadTooLargeError, ReportParseError or
            ReportGenerationError once every attempt has failed.
        """
        content = build_content([*parts, JSON_ONLY_INSTRUCTION])
        attempt = reset_attempt()

        with timed("report_generation", details={"kind": kind, "model": self._model}):
            while True:
                try:
                    text = await self._complete(content)
                    return self._parse(text)
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    attempt = next_attempt(attempt)
                    log_event({
                        "ts_ms": now_ms(),
                        "event_type": "REPORT_ATTEMPT_FAILED",
                        "kind": kind,
                        "attempt": attempt.attempt,
                        "error": failure_text(exc),
                    })

                    if not should_retry(attempt):
                        error = final_error(exc)
                        log_event({
                            "ts_ms": now_ms(),
                            "event_type": "REPORT_FAILED",
                            "kind": kind,
                            "attempts": attempt.attempt,
                            "error_type": type(error).__name__,
                        })
                        raise error from exc

                    await self._sleep(get_retry_delay_ms(attempt) / 1000)

    async def generate_text(self, prompt: str) -> str | None:
        """
        Single free-text completion (no retries, no JSON).

        Returns None when the model replied with nothing.
        """
        content = build_content([prompt])
        text = await self._complete(content, allow_empty=True)
        return text or None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _complete(self, content: list[dict[str, Any]], *, allow_empty: bool = False) -> str:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[{"role": "user", "content": content}],
            temperature=self._temperature,
        )
        text = self._extract_text(response)
        if not text and not allow_empty:
            raise ReportGenerationError("Received empty response from data center.")
        return text

    @staticmethod
    def _extract_text(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        return getattr(message, "content", None) or ""

    @staticmethod
    def _parse(text: str) -> dict[str, Any]:
        report = json.loads(extract_json_text(text))
        if not isinstance(report, dict):
            raise ValueError("JSON report is not an object")
        return report
