# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from types import SimpleNamespace
from typing import Any

import pytest

from reports.errors import ReportGenerationError, ReportParseError, ReportPayloadTooLargeError
from reports.generator import ImagePart, ReportGenerator, build_content
from reports.json_extract import extract_json_text
from reports.retry import (
    FailureType,
    RetryAttempt,
    classify_failure,
    get_retry_delay_ms,
    should_retry,
)


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

def _reply(text: str | None) -> Any:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class FakeCompletions:
    def __init__(self, outcomes: list[Any]) -> None:
        self._outcomes = list(outcomes)
        self.requests: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.requests.append(kwargs)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return _reply(outcome)


class FakeClient:
    def __init__(self, outcomes: list[Any]) -> None:
        self.chat = SimpleNamespace(completions=FakeCompletions(outcomes))

    @property
    def requests(self) -> list[dict[str, Any]]:
        return self.chat.completions.requests


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _generator(outcomes: list[Any]) -> tuple[ReportGenerator, FakeClient, SleepRecorder]:
    client = FakeClient(outcomes)
    sleep = SleepRecorder()
    return ReportGenerator(client=client, model="report-model", sleep=sleep), client, sleep


# ---------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------

def test_extract_prefers_fenced_block() -> None:
    text = 'Here you go:\n```json\n{"a": 1}\n```\nand {"b": 2}'

    assert extract_json_text(text) == '{"a": 1}'


def test_extract_plain_fence() -> None:
    assert extract_json_text('```\n{"a": 1}\n```') == '{"a": 1}'


def test_extract_brace_span_from_prose() -> None:
    assert extract_json_text('The report: {"a": {"b": 2}} Blessings.') == '{"a": {"b": 2}}'


def test_extract_falls_back_to_stripped_text() -> None:
    assert extract_json_text("  no json here  ") == "no json here"


# ---------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------

def test_retry_policy_allows_three_calls_with_linear_delay() -> None:
    assert should_retry(RetryAttempt(1)) and should_retry(RetryAttempt(2))
    assert not should_retry(RetryAttempt(3))
    assert [get_retry_delay_ms(RetryAttempt(n)) for n in (1, 2)] == [2000, 4000]


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (RuntimeError("Rpc failed"), FailureType.OVERSIZED_PAYLOAD),
        (RuntimeError("Error code: 413 - payload too large"), FailureType.OVERSIZED_PAYLOAD),
        (RuntimeError("HTTP 500"), FailureType.OVERSIZED_PAYLOAD),
        (json.JSONDecodeError("Expecting value", "x" * 600, 500), FailureType.MALFORMED_JSON),
        (ValueError("JSON report is not an object"), FailureType.MALFORMED_JSON),
        (RuntimeError("timeout"), FailureType.GENERIC),
    ],
)
def test_classify_failure(exc: Exception, expected: FailureType) -> None:
    assert classify_failure(exc) is expected


# ---------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------

def test_build_content_keeps_order_and_inlines_images() -> None:
    content = build_content(["Right palm:", ImagePart("QUJD")])

    assert content == [
        {"type": "text", "text": "Right palm:"},
        {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,QUJD"}},
    ]


@pytest.mark.asyncio
async def test_first_valid_reply_is_parsed() -> None:
    generator, client, sleep = _generator(['```json\n{"summary": "balanced"}\n```'])

    report = await generator.generate_and_parse(["prompt"])

    assert report == {"summary": "balanced"}
    assert sleep.delays == []
    request = client.requests[0]
    assert request["model"] == "report-model"
    assert request["temperature"] == 0.4
    parts = request["messages"][0]["content"]
    assert parts[0] == {"type": "text", "text": "prompt"}
    assert "Output valid JSON only" in parts[-1]["text"]


@pytest.mark.asyncio
async def test_retries_after_failures_then_succeeds() -> None:
    generator, client, sleep = _generator([RuntimeError("flaky"), "", '{"ok": true}'])

    report = await generator.generate_and_parse(["prompt"])

    assert report == {"ok": True}
    assert len(client.requests) == 3
    assert sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_oversized_payload_error_after_three_attempts() -> None:
    generator, client, _ = _generator([RuntimeError("Error code: 413")] * 3)

    with pytest.raises(ReportPayloadTooLargeError) as info:
        await generator.generate_and_parse(["prompt", ImagePart("QUJD")])

    assert len(client.requests) == 3
    assert "image payload is too large" in str(info.value)


@pytest.mark.asyncio
async def test_unparseable_reply_raises_parse_error() -> None:
    generator, _, _ = _generator(["I cannot answer that."] * 3)

    with pytest.raises(ReportParseError) as info:
        await generator.generate_and_parse(["prompt"])

    assert str(info.value) == (
        "Failed to parse the doctor's report. The AI response was not valid JSON."
    )


@pytest.mark.asyncio
async def test_empty_replies_raise_generic_error() -> None:
    generator, _, _ = _generator([None, None, None])

    with pytest.raises(ReportGenerationError) as info:
        await generator.generate_and_parse(["prompt"])

    assert type(info.value) is ReportGenerationError  # pylint: disable=unidiomatic-typecheck
    assert str(info.value) == "Failed to generate or parse the analysis report. Please try again."


@pytest.mark.asyncio
async def test_generate_text_allows_empty_reply() -> None:
    generator, _, _ = _generator([""])

    assert await generator.generate_text("question") is None
