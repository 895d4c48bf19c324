"""
Report LLM client factory.

Reports are requested through the OpenAI-compatible chat completions API.
The Gemini provider points the same client at Google's compatibility
endpoint, so one code path serves both.
"""

from __future__ import annotations

from openai import AsyncOpenAI

from config import AppConfig

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


def build_llm_client(config: AppConfig) -> AsyncOpenAI:
    """Build an LLM client with the provider selected by environment variables."""
    provider = config.report_provider.lower()

    if provider == "gemini":
        if not config.gemini_api_key:
            raise RuntimeError("GEMINI_API_KEY environment variable not set")
        return AsyncOpenAI(
            api_key=config.gemini_api_key,
            base_url=config.report_base_url or GEMINI_OPENAI_BASE_URL,
        )

    if provider == "openai":
        if not config.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable not set")
        if config.report_base_url:
            return AsyncOpenAI(api_key=config.openai_api_key, base_url=config.report_base_url)
        return AsyncOpenAI(api_key=config.openai_api_key)

    raise RuntimeError(f"Unknown REPORT_PROVIDER: {config.report_provider}")
