"""Suggestion data model and decoding of raw source payloads.

Sources hand back loosely shaped JSON.  :func:`decode_suggestions` turns that
payload into either :class:`RawSuggestions` (typed shape, unverified codes)
or :class:`InvalidSuggestions` so shape problems are settled at the boundary
instead of deep inside the safety cleaner.  The cleaned, policy-safe result
is a frozen :class:`SuggestionBundle`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

RiskLevel = Literal["low", "medium", "high"]
RISK_LEVELS = ("low", "medium", "high")


# ---------------------------------------------------------------------------
# Cleaned model
# ---------------------------------------------------------------------------


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class EmAlternative(_WireModel):
    code: str
    label: str = ""
    recommended: bool = False
    confidence: Optional[float] = None


class DiagnosisSuggestion(_WireModel):
    code: str
    description: str = ""
    confidence: float = 0.0
    note_snippets: List[str] = Field(default_factory=list, alias="noteSnippets")


class ProcedureSuggestion(_WireModel):
    code: str
    description: str = ""
    confidence: float = 0.0
    note_snippets: List[str] = Field(default_factory=list, alias="noteSnippets")
    within_curated_set: bool = Field(default=False, alias="withinCuratedSet")


class SuggestionBundle(_WireModel):
    em_suggested: Optional[str] = Field(default=None, alias="emSuggested")
    em_alternatives: List[EmAlternative] = Field(default_factory=list, alias="emAlternatives")
    em_confidence: Optional[float] = Field(default=None, alias="emConfidence")
    diagnoses: List[DiagnosisSuggestion] = Field(default_factory=list)
    procedures: List[ProcedureSuggestion] = Field(default_factory=list)
    confidence_bucket: Optional[RiskLevel] = Field(default=None, alias="confidenceBucket")
    denial_risk_level: Optional[RiskLevel] = Field(default=None, alias="denialRiskLevel")
    denial_risk_reasons: List[str] = Field(default_factory=list, alias="denialRiskReasons")
    had_undercode_hint: bool = Field(default=False, alias="hadUndercodeHint")
    had_missed_service_hint: bool = Field(default=False, alias="hadMissedServiceHint")

    def is_empty(self) -> bool:
        return (
            self.em_suggested is None
            and not self.em_alternatives
            and not self.diagnoses
            and not self.procedures
        )


class SafetySummary(_WireModel):
    had_invalid_codes: bool = Field(default=False, alias="hadInvalidCodes")
    filtered_codes_count: int = Field(default=0, ge=0, alias="filteredCodesCount")
    had_format_issues: bool = Field(default=False, alias="hadFormatIssues")

    @property
    def has_issues(self) -> bool:
        return self.had_invalid_codes or self.filtered_codes_count > 0 or self.had_format_issues


@dataclass(frozen=True)
class CleanedSuggestions:
    """A cleaned bundle paired with the summary of what cleaning removed."""

    bundle: SuggestionBundle
    safety_summary: SafetySummary


# ---------------------------------------------------------------------------
# Raw (decoded, unverified) model
# ---------------------------------------------------------------------------


def _as_entry_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, (list, tuple)):
        return []
    # Non-mapping items stay in place as empty entries so they are counted when filtered.
    return [dict(item) if isinstance(item, Mapping) else {} for item in value]


# Code-bearing list fields as (wire alias, field name).
_ENTRY_FIELDS = (
    ("emAlternatives", "em_alternatives"),
    ("diagnoses", "diagnoses"),
    ("procedures", "procedures"),
)


def _misshapen_content(value: Any) -> bool:
    """Return ``True`` for a non-list value that still carries content."""

    if value is None or isinstance(value, (list, tuple)):
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


class RawSuggestions(BaseModel):
    """Source output after shape decoding; codes and values are not yet trusted."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    em_suggested: Any = Field(default=None, alias="emSuggested")
    em_alternatives: List[Dict[str, Any]] = Field(default_factory=list, alias="emAlternatives")
    em_confidence: Any = Field(default=None, alias="emConfidence")
    diagnoses: List[Dict[str, Any]] = Field(default_factory=list)
    procedures: List[Dict[str, Any]] = Field(default_factory=list)
    confidence_bucket: Any = Field(default=None, alias="confidenceBucket")
    denial_risk_level: Any = Field(default=None, alias="denialRiskLevel")
    denial_risk_reasons: List[Any] = Field(default_factory=list, alias="denialRiskReasons")
    had_undercode_hint: Any = Field(default=False, alias="hadUndercodeHint")
    had_missed_service_hint: Any = Field(default=False, alias="hadMissedServiceHint")
    # Code-bearing fields that had content in the wrong shape; their lists decode empty.
    malformed_fields: List[str] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _record_malformed(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        data["malformed_fields"] = [
            alias
            for alias, name in _ENTRY_FIELDS
            if _misshapen_content(data.get(alias, data.get(name)))
        ]
        return data

    @field_validator("em_alternatives", "diagnoses", "procedures", mode="before")
    @classmethod
    def _coerce_entries(cls, value: Any) -> List[Dict[str, Any]]:
        return _as_entry_list(value)

    @field_validator("denial_risk_reasons", mode="before")
    @classmethod
    def _coerce_reasons(cls, value: Any) -> List[Any]:
        if not isinstance(value, (list, tuple)):
            return []
        return list(value)

    def has_content(self) -> bool:
        """Return ``True`` when the source produced any code-bearing content."""

        return bool(self.em_suggested) or bool(
            self.em_alternatives or self.diagnoses or self.procedures or self.malformed_fields
        )


@dataclass(frozen=True)
class InvalidSuggestions:
    """Decode failure: the payload was not a JSON object."""

    reason: str
    payload: Any = None


DecodedSuggestions = Union[RawSuggestions, InvalidSuggestions]


def decode_suggestions(payload: Any) -> DecodedSuggestions:
    """Decode ``payload`` (mapping, JSON text or bundle) into raw suggestions."""

    if isinstance(payload, RawSuggestions):
        return payload
    if isinstance(payload, SuggestionBundle):
        payload = payload.to_wire()
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            return InvalidSuggestions(reason=f"content is not JSON: {exc}", payload=payload)
    if not isinstance(payload, Mapping):
        return InvalidSuggestions(
            reason=f"expected a JSON object, got {type(payload).__name__}", payload=payload
        )
    try:
        return RawSuggestions.model_validate(dict(payload))
    except ValidationError as exc:  # pragma: no cover - every field accepts Any after coercion
        return InvalidSuggestions(reason=str(exc), payload=payload)


__all__ = [
    "RiskLevel",
    "RISK_LEVELS",
    "EmAlternative",
    "DiagnosisSuggestion",
    "ProcedureSuggestion",
    "SuggestionBundle",
    "SafetySummary",
    "CleanedSuggestions",
    "RawSuggestions",
    "InvalidSuggestions",
    "DecodedSuggestions",
    "decode_suggestions",
]
