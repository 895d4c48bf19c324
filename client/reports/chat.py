"""
Hakim chat.

Responsibilities:
- Hold the ordered user/assistant turns of one conversation
- Drop oldest turns once CHAT_MAX_TURNS or CHAT_MAX_CHARS is exceeded
  (a single oversized turn is kept, with a warning)
- Send system instruction + history + new message to the chat model

Non-responsibilities:
- No streaming (a reply is returned whole)
- No retries; a failed send leaves the history untouched
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from constants import CHAT_MAX_CHARS, CHAT_MAX_TURNS
from observability.logger import log_event, now_ms
from observability.metrics import timed
from reports.errors import ReportGenerationError
from reports.prompts import chat_system_prompt


Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class Turn:
    """Single conversation turn."""
    role: Role
    text: str


class ChatHistory:
    """
    Ordered conversation turns, bounded by turn count and total characters.

    Invariants:
    - Turns are stored in chronological order
    - After every append the limits hold, unless only one turn remains
    """

    def __init__(
        self,
        *,
        max_turns: int = CHAT_MAX_TURNS,
        max_chars: int = CHAT_MAX_CHARS,
    ) -> None:
        self._max_turns = max_turns
        self._max_chars = max_chars
        self._turns: list[Turn] = []

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def add(self, role: Role, text: str) -> None:
        self._turns.append(Turn(role=role, text=text))
        self._truncate()

    def serialize(self) -> list[dict[str, str]]:
        """Turns as chat messages: [{"role": ..., "content": ...}, ...]."""
        return [{"role": t.role, "content": t.text} for t in self._turns]

    def _truncate(self) -> None:
        while self._violates_limits():
            if len(self._turns) == 1:
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "CHAT_SINGLE_TURN_OVERSIZED",
                    "char_count": len(self._turns[0].text),
                })
                break

            dropped = self._turns.pop(0)
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CHAT_TURN_DROPPED",
                "role": dropped.role,
                "char_count": len(dropped.text),
            })

    def _violates_limits(self) -> bool:
        if len(self._turns) > self._max_turns:
            return True
        return sum(len(t.text) for t in self._turns) > self._max_chars


class HakimChat:
    """
    Multi-turn conversation with the Hakim over an OpenAI-compatible client.

    Usage:
        chat = HakimChat(client=client, model=model, lang="Farsi")
        reply = await chat.send("What should I eat for a cold temperament?")
    """

    def __init__(
        self,
        *,
        client: Any,
        model: str,
        lang: str,
        context_prompt: str | None = None,
        history: ChatHistory | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._system = chat_system_prompt(lang, context_prompt)
        self._history = history or ChatHistory()

    @property
    def history(self) -> ChatHistory:
        return self._history

    async def send(self, text: str) -> str:
        """
        Send one user message and return the Hakim's reply.

        Both turns are recorded only once the reply has arrived.

        Raises:
            ReportGenerationError if the request fails or the reply is empty.
        """
        messages = [
            {"role": "system", "content": self._system},
            *self._history.serialize(),
            {"role": "user", "content": text},
        ]

        with timed("chat_reply", details={"model": self._model, "turns": len(messages) - 1}):
            try:
                response = await self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                )
            except Exception as exc:
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "CHAT_FAILED",
                    "error": f"{type(exc).__name__}: {exc}",
                })
                raise ReportGenerationError(
                    "The Hakim could not answer right now."
                ) from exc

        reply = _reply_text(response)
        if not reply:
            raise ReportGenerationError("Received empty response from data center.")

        self._history.add("user", text)
        self._history.add("assistant", reply)
        return reply


def _reply_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None) or ""
