"""Suggestion pipeline configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

SUPPORTED_MODES = ("mock", "openai")


@dataclass(frozen=True)
class SuggestionSettings:
    """Resolved configuration for the suggestion pipeline."""

    mode: str = "mock"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    request_timeout: float = 30.0
    max_note_chars: int = 10000

    def __post_init__(self) -> None:
        if self.mode not in SUPPORTED_MODES:
            raise ValueError(f"Unsupported LLM mode {self.mode!r}; expected one of {SUPPORTED_MODES}")
        if self.max_note_chars <= 0:
            raise ValueError("max_note_chars must be positive")

    def require_openai_key(self) -> str:
        if not self.openai_api_key:
            raise ValueError("LLM mode 'openai' requires OPENAI_API_KEY to be set")
        return self.openai_api_key

    @property
    def completions_url(self) -> str:
        return self.openai_base_url.rstrip("/") + "/chat/completions"


def _get_int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer; got {raw!r}") from exc


def _get_float_env(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number; got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_suggestion_settings() -> SuggestionSettings:
    """Return the active suggestion settings derived from the environment.

    ``openai`` mode fails fast when no API key is configured so a
    misconfigured deployment never silently serves mock suggestions.
    """

    mode = (os.getenv("CODEPILOT_LLM_MODE") or os.getenv("LLM_MODE") or "mock").strip().lower()
    defaults = SuggestionSettings()
    timeout = _get_float_env("LLM_REQUEST_TIMEOUT")
    max_chars = _get_int_env("MAX_NOTE_CHARS")
    settings = SuggestionSettings(
        mode=mode,
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_model=os.getenv("OPENAI_MODEL") or defaults.openai_model,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or defaults.openai_base_url,
        request_timeout=timeout if timeout is not None else defaults.request_timeout,
        max_note_chars=max_chars if max_chars is not None else defaults.max_note_chars,
    )
    if settings.mode == "openai":
        settings.require_openai_key()
    return settings


__all__ = ["SUPPORTED_MODES", "SuggestionSettings", "get_suggestion_settings"]
