"""Failure kinds surfaced by the suggestion path."""

from __future__ import annotations

from typing import Optional

EMPTY_NOTE = "EMPTY_NOTE"
SOURCE_ERROR = "SOURCE_ERROR"
PARSE_ERROR = "PARSE_ERROR"


class SuggestionError(Exception):
    """Base error for the suggestion pipeline."""

    kind: str = SOURCE_ERROR

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class EmptyNoteError(SuggestionError):
    """Raised when the caller supplied a blank note; no source is called."""

    kind = EMPTY_NOTE


class SourceError(SuggestionError):
    """Transport or backend failure with no usable fallback."""

    kind = SOURCE_ERROR


class SuggestionParseError(SuggestionError):
    """The source answered but its content was not structured data."""

    kind = PARSE_ERROR


__all__ = [
    "EMPTY_NOTE",
    "SOURCE_ERROR",
    "PARSE_ERROR",
    "SuggestionError",
    "EmptyNoteError",
    "SourceError",
    "SuggestionParseError",
]
