"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No session logic
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import LIVE_DEFAULT_MODEL, LIVE_DEFAULT_VOICE


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup by the CLI entry point.
    Passed downward to the session controller and report/history clients.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Live voice session
    # ------------------------------------------------------------------

    gemini_api_key: str | None
    live_model: str
    live_voice: str

    # ------------------------------------------------------------------
    # Audio devices (None = system default)
    # ------------------------------------------------------------------

    input_device: str | None
    output_device: str | None

    # ------------------------------------------------------------------
    # Report generation
    # ------------------------------------------------------------------

    report_provider: str
    openai_api_key: str | None
    report_model: str
    report_base_url: str | None

    # ------------------------------------------------------------------
    # History backend
    # ------------------------------------------------------------------

    history_base_url: str

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Missing API keys are allowed here; the component that needs a key
        fails when it is constructed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            gemini_api_key=os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY"),
            live_model=os.environ.get("LIVE_MODEL", LIVE_DEFAULT_MODEL),
            live_voice=os.environ.get("LIVE_VOICE", LIVE_DEFAULT_VOICE),

            input_device=os.environ.get("INPUT_DEVICE") or None,
            output_device=os.environ.get("OUTPUT_DEVICE") or None,

            report_provider=os.environ.get("REPORT_PROVIDER", "gemini"),
            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            report_model=os.environ.get("REPORT_MODEL", "gemini-2.5-pro"),
            report_base_url=os.environ.get("REPORT_BASE_URL"),

            history_base_url=os.environ.get("HISTORY_BASE_URL", "http://localhost:8080/api"),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
        )
