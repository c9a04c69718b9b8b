"""Suggestion source contract and the resilient fallback wrapper.

A source turns ``(note_text, visit_type, specialty)`` into decoded
:class:`RawSuggestions`.  Failures are carried in an explicit
:class:`SourceResult` so the fallback policy reads as
``attempt(primary).or_else(attempt(fallback))``:

* ``SOURCE_ERROR`` (transport, timeout, non-2xx, unreadable envelope) falls
  back when a fallback source is configured.
* ``PARSE_ERROR`` (the source answered with content that is not structured
  data) never falls back; it points at a source configuration bug.

Cleaning is applied after the source by :class:`SafeSuggestionSource`, so
every source shares the same safety policy.
"""

from __future__ import annotations

import abc
import dataclasses
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from codepilot.errors import SOURCE_ERROR, SourceError, SuggestionError, SuggestionParseError
from codepilot.observability import FALLBACKS_USED, SOURCE_FAILURES
from codepilot.safety import clean_suggestions
from codepilot.suggestions import (
    CleanedSuggestions,
    InvalidSuggestions,
    RawSuggestions,
    decode_suggestions,
)


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SuggestionRequest:
    note_text: str
    visit_type: str = ""
    specialty: str = ""


class SuggestionSource(abc.ABC):
    """A generative backend producing raw coding suggestions."""

    @property
    @abc.abstractmethod
    def model_id(self) -> str:
        """Opaque identifier recorded in audit logs."""

    @abc.abstractmethod
    def fetch(self, request: SuggestionRequest) -> RawSuggestions:
        """Return decoded suggestions or raise a :class:`SuggestionError`."""


def decode_or_raise(payload: object, *, source: str) -> RawSuggestions:
    """Decode ``payload`` or raise :class:`SuggestionParseError`."""

    decoded = decode_suggestions(payload)
    if isinstance(decoded, InvalidSuggestions):
        raise SuggestionParseError(f"{source} returned unstructured content: {decoded.reason}")
    return decoded


@dataclass(frozen=True)
class SourceResult:
    """Outcome of one source call: decoded suggestions or the error raised."""

    suggestions: Optional[RawSuggestions] = None
    error: Optional[SuggestionError] = None
    source_id: str = ""
    used_fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def attempt(cls, source: SuggestionSource, request: SuggestionRequest) -> "SourceResult":
        source_id = source.model_id
        try:
            return cls(suggestions=source.fetch(request), source_id=source_id)
        except SuggestionError as exc:
            error: SuggestionError = exc
        except Exception as exc:
            error = SourceError(f"{source_id} failed: {exc}", cause=exc)
        SOURCE_FAILURES.labels(kind=error.kind, source=source_id).inc()
        logger.warning(
            "suggestion_source_failed",
            source=source_id,
            kind=error.kind,
            error=str(error),
        )
        return cls(error=error, source_id=source_id)

    def or_else(self, fallback: Callable[[], "SourceResult"]) -> "SourceResult":
        """Return ``fallback()`` when this result is a source failure."""

        if self.error is None or self.error.kind != SOURCE_ERROR:
            return self
        recovered = fallback()
        FALLBACKS_USED.labels(primary=self.source_id, fallback=recovered.source_id).inc()
        logger.info(
            "suggestion_fallback_used",
            primary=self.source_id,
            fallback=recovered.source_id,
            recovered=recovered.ok,
        )
        return dataclasses.replace(recovered, used_fallback=True)

    def unwrap(self) -> RawSuggestions:
        if self.error is not None:
            raise self.error
        assert self.suggestions is not None
        return self.suggestions


class SafeSuggestionSource:
    """Primary source with optional fallback, followed by safety cleaning."""

    def __init__(self, primary: SuggestionSource, fallback: Optional[SuggestionSource] = None) -> None:
        self.primary = primary
        self.fallback = fallback

    @property
    def model_id(self) -> str:
        return self.primary.model_id

    def fetch(self, request: SuggestionRequest) -> SourceResult:
        result = SourceResult.attempt(self.primary, request)
        if self.fallback is not None:
            fallback = self.fallback
            result = result.or_else(lambda: SourceResult.attempt(fallback, request))
        return result

    def generate(self, request: SuggestionRequest) -> CleanedSuggestions:
        """Return cleaned suggestions; a degraded (fallback) answer is flagged.

        Raises:
            SourceError: primary failed and no fallback rescued it.
            SuggestionParseError: a source answered with unstructured content.
        """

        result = self.fetch(request)
        cleaned = clean_suggestions(result.unwrap())
        if not result.used_fallback:
            return cleaned
        summary = cleaned.safety_summary.model_copy(update={"had_format_issues": True})
        return CleanedSuggestions(bundle=cleaned.bundle, safety_summary=summary)


__all__ = [
    "SuggestionRequest",
    "SuggestionSource",
    "SourceResult",
    "SafeSuggestionSource",
    "decode_or_raise",
]
