# pylint: disable=missing-module-docstring,missing-function-docstring

from types import SimpleNamespace
from typing import Any

import pytest

from observability import logger
from reports.chat import ChatHistory, HakimChat
from reports.errors import ReportGenerationError


class FakeCompletions:
    def __init__(self, outcomes: list[Any]) -> None:
        self._outcomes = list(outcomes)
        self.requests: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.requests.append(kwargs)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=outcome))])


def _client(outcomes: list[Any]) -> Any:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(outcomes)))


@pytest.mark.asyncio
async def test_send_carries_system_prompt_and_history() -> None:
    client = _client(["Eat warm foods.", "Ginger and honey."])
    chat = HakimChat(client=client, model="chat-model", lang="Farsi", context_prompt="Temperament: cold and dry")

    first = await chat.send("What should I eat?")
    second = await chat.send("Which herbs?")

    assert (first, second) == ("Eat warm foods.", "Ginger and honey.")
    request = client.chat.completions.requests[1]
    assert request["model"] == "chat-model"
    system, *rest = request["messages"]
    assert system["role"] == "system"
    assert "Grand Hakim" in system["content"]
    assert "Respond in **Farsi**." in system["content"]
    assert "Temperament: cold and dry" in system["content"]
    assert rest == [
        {"role": "user", "content": "What should I eat?"},
        {"role": "assistant", "content": "Eat warm foods."},
        {"role": "user", "content": "Which herbs?"},
    ]


@pytest.mark.asyncio
async def test_failed_send_leaves_history_untouched(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: events.append({"line": line}))
    chat = HakimChat(client=_client([RuntimeError("503"), None]), model="m", lang="English")

    with pytest.raises(ReportGenerationError):
        await chat.send("hello")
    with pytest.raises(ReportGenerationError, match="empty response"):
        await chat.send("hello again")

    assert chat.history.turns == ()
    assert any("CHAT_FAILED" in e["line"] for e in events)


def test_history_drops_oldest_turns_past_limits() -> None:
    history = ChatHistory(max_turns=3, max_chars=100)
    for text in ("a", "b", "c", "d"):
        history.add("user", text)

    assert [t.text for t in history.turns] == ["b", "c", "d"]

    history.add("assistant", "x" * 99)

    assert [t.text for t in history.turns] == ["d", "x" * 99]


def test_single_oversized_turn_is_kept() -> None:
    history = ChatHistory(max_turns=5, max_chars=10)

    history.add("user", "y" * 50)

    assert history.serialize() == [{"role": "user", "content": "y" * 50}]
