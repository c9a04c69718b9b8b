"""
Suggestion source backed by an OpenAI-compatible Chat Completions API.

Error mapping:
1. Timeouts, connection failures, blocked egress and non-2xx responses raise
   :class:`SourceError` with the original exception attached, so a configured
   fallback can take over.
2. A response envelope that is not JSON or carries no message content is
   also a :class:`SourceError`.
3. Message content that is not a JSON object raises
   :class:`SuggestionParseError`; it is never hidden behind a fallback.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests
import structlog

from codepilot.config import SuggestionSettings
from codepilot.egress import EgressBlockedError, secure_post
from codepilot.errors import SourceError
from codepilot.prompts import build_suggestion_prompt
from codepilot.sources import SuggestionRequest, SuggestionSource, decode_or_raise
from codepilot.suggestions import RawSuggestions


logger = structlog.get_logger(__name__)

TEMPERATURE = 0.3


def _message_content(envelope: Any) -> Optional[str]:
    if not isinstance(envelope, dict):
        return None
    choices = envelope.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if isinstance(content, str) and content.strip():
        return content
    return None


class OpenAISuggestionSource(SuggestionSource):
    """Calls the chat completions endpoint in JSON response mode."""

    def __init__(self, settings: SuggestionSettings) -> None:
        self._api_key = settings.require_openai_key()
        self._model = settings.openai_model
        self._url = settings.completions_url
        self._timeout = settings.request_timeout

    @property
    def model_id(self) -> str:
        return f"openai:{self._model}"

    def _payload(self, request: SuggestionRequest) -> Dict[str, Any]:
        return {
            "model": self._model,
            "messages": build_suggestion_prompt(
                request.note_text, request.visit_type, request.specialty
            ),
            "temperature": TEMPERATURE,
            "response_format": {"type": "json_object"},
        }

    def fetch(self, request: SuggestionRequest) -> RawSuggestions:
        try:
            response = secure_post(
                self._url,
                json=self._payload(request),
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
            )
        except (requests.exceptions.RequestException, EgressBlockedError) as exc:
            raise SourceError(f"OpenAI request failed: {exc}", cause=exc) from exc

        try:
            envelope = response.json()
        except ValueError as exc:
            raise SourceError("OpenAI response body is not JSON", cause=exc) from exc

        content = _message_content(envelope)
        if content is None:
            raise SourceError("No content in OpenAI response")

        logger.debug("openai_suggestions_received", model=self._model, chars=len(content))
        return decode_or_raise(content, source=self.model_id)


__all__ = ["OpenAISuggestionSource", "TEMPERATURE"]
