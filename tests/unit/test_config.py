# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from adapters.llm.client import GEMINI_OPENAI_BASE_URL, build_llm_client
from config import AppConfig
from constants import LIVE_DEFAULT_MODEL, LIVE_DEFAULT_VOICE

_ENV_VARS = (
    "ENV", "LOG_LEVEL", "GEMINI_API_KEY", "API_KEY", "OPENAI_API_KEY",
    "LIVE_MODEL", "LIVE_VOICE", "INPUT_DEVICE", "OUTPUT_DEVICE",
    "REPORT_PROVIDER", "REPORT_MODEL", "REPORT_BASE_URL",
    "HISTORY_BASE_URL", "ENABLE_JSON_LOGS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    config = AppConfig.load_from_env()

    assert config.gemini_api_key is None
    assert config.live_model == LIVE_DEFAULT_MODEL
    assert config.live_voice == LIVE_DEFAULT_VOICE == "Zephyr"
    assert config.report_provider == "gemini"
    assert config.input_device is None
    assert config.enable_json_logs


def test_api_key_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_KEY", "legacy")
    assert AppConfig.load_from_env().gemini_api_key == "legacy"

    monkeypatch.setenv("GEMINI_API_KEY", "primary")
    assert AppConfig.load_from_env().gemini_api_key == "primary"


def test_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LIVE_VOICE", "Puck")
    monkeypatch.setenv("INPUT_DEVICE", "2")
    monkeypatch.setenv("ENABLE_JSON_LOGS", "0")

    config = AppConfig.load_from_env()

    assert config.live_voice == "Puck"
    assert config.input_device == "2"
    assert not config.enable_json_logs


def test_gemini_report_client_uses_compatibility_endpoint(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "key")

    client = build_llm_client(AppConfig.load_from_env())

    assert str(client.base_url) == GEMINI_OPENAI_BASE_URL


def test_report_client_requires_key() -> None:
    with pytest.raises(RuntimeError, match="GEMINI_API_KEY"):
        build_llm_client(AppConfig.load_from_env())


def test_unknown_report_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPORT_PROVIDER", "mystery")

    with pytest.raises(RuntimeError, match="Unknown REPORT_PROVIDER"):
        build_llm_client(AppConfig.load_from_env())
