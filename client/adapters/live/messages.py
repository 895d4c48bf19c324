"""
Inbound live-session messages.

Parses one server frame (JSON text or bytes) into a flat, typed view.
Only the fields the client acts on are extracted; the raw payload is kept
for logging.

Shape of the server frames consumed:

    {"setupComplete": {}}
    {"serverContent": {
        "modelTurn": {"parts": [{"inlineData": {"mimeType": "audio/pcm;rate=24000",
                                                "data": "<base64>"}},
                                {"text": "..."}]},
        "inputTranscription": {"text": "..."},
        "outputTranscription": {"text": "..."},
        "interrupted": true,
        "turnComplete": true}}
    {"goAway": {"timeLeft": "10s"}}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from audio.frames import InboundAudioChunk


class LiveProtocolError(Exception):
    """A server frame was not a JSON object."""


@dataclass(frozen=True)
class LiveServerMessage:
    """Flattened view of one server frame."""
    audio: InboundAudioChunk | None = None
    text: str | None = None
    input_transcript: str | None = None
    output_transcript: str | None = None
    interrupted: bool = False
    turn_complete: bool = False
    setup_complete: bool = False
    go_away: bool = False
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def has_audio(self) -> bool:
        """True if the frame carries a non-empty inline audio payload."""
        return self.audio is not None and bool(self.audio.data)


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _transcript(content: dict[str, Any], key: str) -> str | None:
    text = _as_dict(content.get(key)).get("text")
    return text if isinstance(text, str) and text else None


def parse_server_message(payload: str | bytes) -> LiveServerMessage:
    """
    Parse one server frame.

    Raises:
        LiveProtocolError if the payload is not a JSON object.
    """
    try:
        data = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as exc:
        raise LiveProtocolError(f"invalid JSON frame: {exc}") from exc

    if not isinstance(data, dict):
        raise LiveProtocolError(f"expected JSON object, got {type(data).__name__}")

    content = _as_dict(data.get("serverContent"))
    parts = _as_dict(content.get("modelTurn")).get("parts") or []

    audio: InboundAudioChunk | None = None
    texts: list[str] = []
    for part in parts:
        part = _as_dict(part)
        inline = _as_dict(part.get("inlineData"))
        if audio is None and isinstance(inline.get("data"), str) and inline["data"]:
            audio = InboundAudioChunk(data=inline["data"], mime_type=inline.get("mimeType"))
        # Thought summaries are not user-facing
        if isinstance(part.get("text"), str) and part["text"] and not part.get("thought"):
            texts.append(part["text"])

    return LiveServerMessage(
        audio=audio,
        text="".join(texts) or None,
        input_transcript=_transcript(content, "inputTranscription"),
        output_transcript=_transcript(content, "outputTranscription"),
        interrupted=bool(content.get("interrupted")),
        turn_complete=bool(content.get("turnComplete")),
        setup_complete="setupComplete" in data,
        go_away="goAway" in data,
        raw=data,
    )
