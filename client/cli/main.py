"""
Command-line entry point.

    hakim live [--input-file PATH] [--duration SECONDS]
    hakim report KIND [--lang LANG] [--image PATH ...] [--field KEY=VALUE ...]
    hakim history {register,login,save,list} ...
    hakim chat [--lang LANG] [--context TEXT]

stdout carries JSONL events (when enabled) and command results as JSON;
live transcripts go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Sequence

from dotenv import load_dotenv

from adapters.live.base import LiveSessionConfig
from adapters.live.gemini import GeminiLiveTransport
from adapters.llm.client import build_llm_client
from audio.capture import CaptureBackend, FileCapture, MicrophoneCapture
from audio.playback import SpeakerOutput
from config import AppConfig
from constants import LIVE_PERSONA
from history.api import HistoryClient
from observability import logger
from reports.analyses import PalmUserContext, RelationshipContext, ReportService
from reports.chat import HakimChat
from reports.errors import ReportGenerationError
from reports.generator import ReportGenerator
from session.callbacks import LiveSessionCallbacks
from session.controller import LiveSessionController
from session.errors import LiveSessionError
from session.state import SessionState


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _device(value: str | None) -> int | str | None:
    """Device names stay strings; numeric values are PortAudio indices."""
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def _read_image(path: str) -> str:
    return base64.b64encode(Path(path).read_bytes()).decode("ascii")


def _parse_fields(pairs: Sequence[str]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise SystemExit(f"--field expects KEY=VALUE, got {pair!r}")
        fields[key.strip()] = value
    return fields


def _emit(result: Any) -> None:
    sys.stdout.write(json.dumps(result, ensure_ascii=False, indent=2) + "\n")


def _stderr(line: str) -> None:
    sys.stderr.write(line + "\n")
    sys.stderr.flush()


# ------------------------------------------------------------------
# live
# ------------------------------------------------------------------

async def run_live(config: AppConfig, args: argparse.Namespace) -> int:
    if not config.gemini_api_key:
        _stderr("GEMINI_API_KEY environment variable not set")
        return 2

    capture: CaptureBackend
    if args.input_file:
        capture = FileCapture(args.input_file)
    else:
        capture = MicrophoneCapture(device=_device(config.input_device))

    closed = asyncio.Event()
    failed: list[Exception] = []

    def on_message(text: str, is_user: bool) -> None:
        _stderr(f"{'you' if is_user else 'hakim'}: {text}")

    def on_error(exc: Exception) -> None:
        failed.append(exc)
        _stderr(f"error: {exc}")

    callbacks = LiveSessionCallbacks(
        on_open=lambda: _stderr("connected; speak now (Ctrl-C to stop)"),
        on_message=on_message,
        on_error=on_error,
        on_close=closed.set,
    )

    session_config = LiveSessionConfig(
        model=config.live_model,
        voice=config.live_voice,
        system_instruction=LIVE_PERSONA,
    )
    try:
        sink = SpeakerOutput(device=_device(config.output_device)).open()
    except LiveSessionError as exc:
        _stderr(f"error: {exc}")
        return 1

    async with LiveSessionController(
        config=session_config,
        transport=GeminiLiveTransport(api_key=config.gemini_api_key),
        capture=capture,
        sink=sink,
        callbacks=callbacks,
    ) as controller:
        await controller.connect()
        if controller.state is SessionState.DISCONNECTED:
            return 1

        try:
            await asyncio.wait_for(closed.wait(), timeout=args.duration)
        except asyncio.TimeoutError:
            controller.disconnect()

    return 1 if failed else 0


# ------------------------------------------------------------------
# report
# ------------------------------------------------------------------

ReportRunner = Callable[[ReportService, argparse.Namespace, dict[str, str]], Awaitable[Any]]


def _relationship(fields: Mapping[str, str]) -> RelationshipContext:
    return RelationshipContext(
        relationship_status=fields.get("status", "unknown"),
        gender_a=fields.get("gender_a", "unknown"),
        gender_b=fields.get("gender_b", "unknown"),
    )


def _images(args: argparse.Namespace, count: int) -> list[str]:
    images = [_read_image(path) for path in args.image or []]
    if len(images) < count:
        raise SystemExit(f"{args.kind} needs {count} --image argument(s)")
    return images


def _history_items(fields: Mapping[str, str]) -> list[dict[str, Any]]:
    path = fields.get("history_file")
    if not path:
        raise SystemExit("--field history_file=PATH is required")
    items = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(items, list):
        raise SystemExit("history file must contain a JSON list")
    return items


_REPORTS: dict[str, ReportRunner] = {
    "palm": lambda svc, a, f: svc.analyze_palm(
        *_images(a, 2),
        f.get("palmistry", "Indian"),
        PalmUserContext(
            age=f.get("age", "unknown"),
            gender=f.get("gender", "unknown"),
            dominant_hand=f.get("dominant_hand", "right"),
        ),
        a.lang,
    ),
    "compatibility": lambda svc, a, f: svc.analyze_compatibility(
        *_images(a, 4), _relationship(f), a.lang,
    ),
    "astrology-compatibility": lambda svc, a, f: svc.analyze_astrology_compatibility(
        f["birth_date_a"], f["birth_date_b"], _relationship(f), a.lang,
    ),
    "temperament-compatibility": lambda svc, a, f: svc.analyze_temperament_compatibility(
        f["temperament_a"], f["temperament_b"], _relationship(f), a.lang,
    ),
    "tongue": lambda svc, a, f: svc.analyze_tongue(
        _images(a, 1)[0], f.get("method", "TCM"), a.lang,
    ),
    "iris": lambda svc, a, f: svc.analyze_iris(
        _images(a, 1)[0], f.get("model", "Jensen"), a.lang,
    ),
    "nails": lambda svc, a, f: svc.analyze_nails(
        *_images(a, 2), f.get("model", "Clinical"), a.lang,
    ),
    "face": lambda svc, a, f: svc.analyze_face(
        _images(a, 1)[0], f.get("model", "Persian"), a.lang,
    ),
    "temperament": lambda svc, a, f: svc.analyze_temperament(f, a.lang),
    "dream": lambda svc, a, f: svc.interpret_dream(
        f["description"], f.get("feeling", ""), f.get("model", "Islamic"), a.lang,
    ),
    "astrology": lambda svc, a, f: svc.astrology_report(
        f["birth_date"], f.get("birth_time"), f.get("birth_place"), a.lang,
    ),
    "sujok": lambda svc, a, f: svc.analyze_sujok(
        {
            key: _read_image(f[key])
            for key in ("right_hand", "left_hand", "right_foot", "left_foot")
            if f.get(key)
        },
        f.get("symptoms", ""),
        a.lang,
    ),
    "comparison": lambda svc, a, f: svc.analyze_comparison(_history_items(f), a.lang),
    "synergy": lambda svc, a, f: svc.synergy_report(_history_items(f), a.lang),
    "daily": lambda svc, a, f: svc.daily_outlook(
        json.loads(Path(f["reports_file"]).read_text(encoding="utf-8")) if f.get("reports_file") else {},
        a.lang,
    ),
}


async def run_report(config: AppConfig, args: argparse.Namespace) -> int:
    service = ReportService(
        ReportGenerator(client=build_llm_client(config), model=config.report_model)
    )
    fields = _parse_fields(args.field or [])

    if args.kind == "encyclopedia":
        entry = await service.encyclopedia(fields["query"], args.lang)
        _emit({"text": entry.text, "sources": list(entry.sources)})
        return 0
    if args.kind == "science-history":
        _emit({"text": await service.science_history(fields["topic"], args.lang)})
        return 0

    runner = _REPORTS[args.kind]
    _emit(await runner(service, args, fields))
    return 0


# ------------------------------------------------------------------
# chat
# ------------------------------------------------------------------

async def run_chat(config: AppConfig, args: argparse.Namespace) -> int:
    chat = HakimChat(
        client=build_llm_client(config),
        model=config.report_model,
        lang=args.lang,
        context_prompt=args.context,
    )
    _stderr("ask the Hakim (empty line or Ctrl-D to stop)")

    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        text = line.strip()
        if not text:
            return 0
        try:
            reply = await chat.send(text)
        except ReportGenerationError as exc:
            _stderr(f"error: {exc}")
            continue
        sys.stdout.write(f"hakim: {reply}\n")
        sys.stdout.flush()


# ------------------------------------------------------------------
# history
# ------------------------------------------------------------------

async def run_history(config: AppConfig, args: argparse.Namespace) -> int:
    async with HistoryClient(config.history_base_url) as history:
        if args.action == "register":
            result = await history.register(_parse_fields(args.field or []))
        elif args.action == "login":
            result = await history.login({"username": args.username, "password": args.password})
        elif args.action == "save":
            item = json.loads(Path(args.item_file).read_text(encoding="utf-8"))
            result = await history.save_history(args.user_id, item)
        else:
            result = await history.get_history(args.user_id)
    _emit(result)
    return 0


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hakim", description="Hakim voice and report client")
    sub = parser.add_subparsers(dest="command", required=True)

    live = sub.add_parser("live", help="talk to the Hakim in real time")
    live.add_argument("--input-file", help="stream a WAV/FLAC file instead of the microphone")
    live.add_argument("--duration", type=float, default=None, help="stop after N seconds")

    report = sub.add_parser("report", help="generate one analysis report")
    report.add_argument(
        "kind",
        choices=sorted([*_REPORTS, "encyclopedia", "science-history"]),
    )
    report.add_argument("--lang", default="English")
    report.add_argument("--image", action="append", help="image file (repeatable, in order)")
    report.add_argument("--field", action="append", help="KEY=VALUE input (repeatable)")

    chat = sub.add_parser("chat", help="converse with the Hakim")
    chat.add_argument("--lang", default="English")
    chat.add_argument("--context", default=None, help="extra context for the conversation")

    history = sub.add_parser("history", help="history/auth backend")
    history_sub = history.add_subparsers(dest="action", required=True)
    register = history_sub.add_parser("register")
    register.add_argument("--field", action="append", help="KEY=VALUE profile field")
    login = history_sub.add_parser("login")
    login.add_argument("username")
    login.add_argument("password")
    save = history_sub.add_parser("save")
    save.add_argument("user_id", type=int)
    save.add_argument("item_file")
    listing = history_sub.add_parser("list")
    listing.add_argument("user_id", type=int)

    return parser


_COMMANDS: dict[str, Callable[[AppConfig, argparse.Namespace], Awaitable[int]]] = {
    "live": run_live,
    "report": run_report,
    "history": run_history,
    "chat": run_chat,
}


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    config = AppConfig.load_from_env()
    logger.configure(enabled=config.enable_json_logs)

    try:
        return asyncio.run(_COMMANDS[args.command](config, args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
