"""Safety cleaner for model generated code suggestions.

The cleaner fails safe by omission: any code that does not match its domain
grammar is dropped and counted rather than surfaced, because showing an
invalid medical code is worse than showing none.  Free text produced by the
model is stripped of HTML before it can reach a UI.
"""

from __future__ import annotations

import html
from typing import Any, Callable, Dict, List, Optional

import bleach
import structlog

from codepilot.code_formats import (
    clamp_confidence,
    is_valid_diagnosis_code,
    is_valid_em_code,
    is_valid_procedure_code,
    normalize_code,
)
from codepilot.observability import FILTERED_CODES
from codepilot.suggestions import (
    RISK_LEVELS,
    CleanedSuggestions,
    DiagnosisSuggestion,
    EmAlternative,
    InvalidSuggestions,
    ProcedureSuggestion,
    RawSuggestions,
    SafetySummary,
    SuggestionBundle,
    decode_suggestions,
)


logger = structlog.get_logger(__name__)


def sanitize_text(value: Any) -> str:
    """Return ``value`` as text with any HTML removed."""

    if value is None:
        return ""
    if not isinstance(value, str):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return ""
        value = str(value)
    # bleach escapes what it keeps; the cleaned text is data, not markup.
    cleaned = bleach.clean(value, tags=[], attributes={}, strip=True)
    return html.unescape(cleaned).strip()


def _sanitize_list(values: Any) -> List[str]:
    if not isinstance(values, (list, tuple)):
        return []
    cleaned = (sanitize_text(item) for item in values if isinstance(item, str))
    return [item for item in cleaned if item]


def _risk_level(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip().lower() in RISK_LEVELS:
        return value.strip().lower()
    return None


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


class _Tally:
    """Running count of dropped entries per code class."""

    def __init__(self) -> None:
        self.counts: Dict[str, int] = {}

    def drop(self, code_class: str) -> None:
        self.counts[code_class] = self.counts.get(code_class, 0) + 1

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def _keep_valid(
    entries: List[Dict[str, Any]],
    validator: Callable[[Any], bool],
    code_class: str,
    tally: _Tally,
) -> List[Dict[str, Any]]:
    kept: List[Dict[str, Any]] = []
    for entry in entries:
        if validator(entry.get("code")):
            kept.append(entry)
        else:
            tally.drop(code_class)
    return kept


def _clean_alternative(entry: Dict[str, Any]) -> EmAlternative:
    return EmAlternative(
        code=entry["code"].strip(),
        label=sanitize_text(entry.get("label")),
        recommended=bool(entry.get("recommended")),
        confidence=clamp_confidence(entry.get("confidence")),
    )


def _clean_diagnosis(entry: Dict[str, Any]) -> DiagnosisSuggestion:
    return DiagnosisSuggestion(
        code=normalize_code(entry["code"]),
        description=sanitize_text(entry.get("description")),
        confidence=clamp_confidence(entry.get("confidence")) or 0.0,
        note_snippets=_sanitize_list(entry.get("noteSnippets")),
    )


def _clean_procedure(entry: Dict[str, Any]) -> ProcedureSuggestion:
    return ProcedureSuggestion(
        code=normalize_code(entry["code"]),
        description=sanitize_text(entry.get("description")),
        confidence=clamp_confidence(entry.get("confidence")) or 0.0,
        note_snippets=_sanitize_list(entry.get("noteSnippets")),
        within_curated_set=bool(entry.get("withinCuratedSet")),
    )


def clean_suggestions(raw: Any) -> CleanedSuggestions:
    """Validate every code-bearing field of ``raw`` and drop what fails.

    ``raw`` may be :class:`RawSuggestions`, a mapping, JSON text or an
    already cleaned :class:`SuggestionBundle`.  This function never raises.
    """

    decoded = decode_suggestions(raw)
    if isinstance(decoded, InvalidSuggestions):
        logger.warning("suggestion_payload_undecodable", reason=decoded.reason)
        summary = SafetySummary(had_format_issues=bool(decoded.payload))
        return CleanedSuggestions(bundle=SuggestionBundle(), safety_summary=summary)
    return _clean_decoded(decoded)


def _clean_decoded(raw: RawSuggestions) -> CleanedSuggestions:
    tally = _Tally()

    em_suggested: Optional[str] = None
    if raw.em_suggested:
        if is_valid_em_code(raw.em_suggested):
            em_suggested = raw.em_suggested.strip()
        else:
            tally.drop("em")

    alternatives = [
        _clean_alternative(entry)
        for entry in _keep_valid(raw.em_alternatives, is_valid_em_code, "em", tally)
    ]
    diagnoses = [
        _clean_diagnosis(entry)
        for entry in _keep_valid(raw.diagnoses, is_valid_diagnosis_code, "diagnosis", tally)
    ]
    procedures = [
        _clean_procedure(entry)
        for entry in _keep_valid(raw.procedures, is_valid_procedure_code, "procedure", tally)
    ]

    bundle = SuggestionBundle(
        em_suggested=em_suggested,
        em_alternatives=alternatives,
        em_confidence=clamp_confidence(raw.em_confidence),
        diagnoses=diagnoses,
        procedures=procedures,
        confidence_bucket=_risk_level(raw.confidence_bucket),
        denial_risk_level=_risk_level(raw.denial_risk_level),
        denial_risk_reasons=_sanitize_list(raw.denial_risk_reasons),
        had_undercode_hint=_flag(raw.had_undercode_hint),
        had_missed_service_hint=_flag(raw.had_missed_service_hint),
    )

    # Something came back but none of it was usable, as opposed to an honest empty answer.
    had_format_issues = bundle.is_empty() and raw.has_content()
    summary = SafetySummary(
        had_invalid_codes=tally.total > 0,
        filtered_codes_count=tally.total,
        had_format_issues=had_format_issues,
    )

    for code_class, count in tally.counts.items():
        FILTERED_CODES.labels(code_class=code_class).inc(count)
    if summary.has_issues:
        logger.info(
            "suggestion_codes_filtered",
            filtered=summary.filtered_codes_count,
            by_class=dict(tally.counts),
            format_issues=summary.had_format_issues,
            malformed_fields=raw.malformed_fields,
        )
    return CleanedSuggestions(bundle=bundle, safety_summary=summary)


__all__ = ["sanitize_text", "clean_suggestions"]
