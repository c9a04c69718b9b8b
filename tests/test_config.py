import pytest

from codepilot.config import SuggestionSettings, get_suggestion_settings


ENV_VARS = (
    "CODEPILOT_LLM_MODE",
    "LLM_MODE",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "LLM_REQUEST_TIMEOUT",
    "MAX_NOTE_CHARS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_to_mock_mode():
    settings = get_suggestion_settings()
    assert settings.mode == "mock"
    assert settings.openai_model == "gpt-4o-mini"
    assert settings.request_timeout == 30.0
    assert settings.max_note_chars == 10000
    assert settings.completions_url == "https://api.openai.com/v1/chat/completions"


def test_settings_are_cached(monkeypatch):
    first = get_suggestion_settings()
    monkeypatch.setenv("MAX_NOTE_CHARS", "5")
    assert get_suggestion_settings() is first
    get_suggestion_settings.cache_clear()
    assert get_suggestion_settings().max_note_chars == 5


def test_openai_mode_reads_environment(monkeypatch):
    monkeypatch.setenv("LLM_MODE", " OpenAI ")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-live")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4o")
    monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:8080/v1/")
    monkeypatch.setenv("LLM_REQUEST_TIMEOUT", "12.5")

    settings = get_suggestion_settings()

    assert settings.mode == "openai"
    assert settings.openai_model == "gpt-4o"
    assert settings.request_timeout == 12.5
    assert settings.completions_url == "http://localhost:8080/v1/chat/completions"


def test_prefixed_mode_variable_wins(monkeypatch):
    monkeypatch.setenv("LLM_MODE", "openai")
    monkeypatch.setenv("CODEPILOT_LLM_MODE", "mock")
    assert get_suggestion_settings().mode == "mock"


def test_openai_mode_without_key_fails_fast(monkeypatch):
    monkeypatch.setenv("LLM_MODE", "openai")
    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        get_suggestion_settings()


def test_unknown_mode_is_rejected(monkeypatch):
    monkeypatch.setenv("LLM_MODE", "anthropic")
    with pytest.raises(ValueError, match="Unsupported LLM mode"):
        get_suggestion_settings()


@pytest.mark.parametrize("name, value", [("MAX_NOTE_CHARS", "lots"), ("LLM_REQUEST_TIMEOUT", "soon")])
def test_malformed_numbers_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=name):
        get_suggestion_settings()


def test_note_limit_must_be_positive():
    with pytest.raises(ValueError):
        SuggestionSettings(max_note_chars=0)
