"""Selection of a single recommended E/M code from a cleaned bundle.

The selector keeps the model's own suggestion whenever it is a usable code,
and separately reports the highest visit level the documentation could
support.  When that level exceeds the recommendation the encounter is
flagged as at risk of undercoding.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from codepilot.code_formats import is_valid_em_code
from codepilot.suggestions import SuggestionBundle

DEFAULT_PRIMARY_CONFIDENCE = 0.65
RECOMMENDED_ALTERNATIVE_FLOOR = 0.7
ALTERNATIVE_FLOOR = 0.6
# Below this a code is not considered clinically defensible.
SUPPORT_FLOOR = 0.6

HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.5


@dataclass(frozen=True)
class EmCandidate:
    code: str
    level: Optional[int]
    confidence: float

    @property
    def supported(self) -> bool:
        return self.level is not None and self.confidence >= SUPPORT_FLOOR


@dataclass(frozen=True)
class EmSelection:
    recommended: Optional[EmCandidate]
    highest_supported: Optional[EmCandidate]
    has_undercode_delta: bool
    candidates: List[EmCandidate]


def confidence_bucket(value: Optional[float]) -> Optional[str]:
    """Map a confidence to ``high`` (>=0.8), ``medium`` (>=0.5) or ``low``."""

    if value is None:
        return None
    if value >= HIGH_CONFIDENCE:
        return "high"
    if value >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def em_level(code: str) -> Optional[int]:
    """Return the visit level encoded in the last digit of ``code``."""

    if not code:
        return None
    last = code.strip()[-1:]
    return int(last) if last.isdigit() else None


def _candidate(code: str, confidence: float) -> EmCandidate:
    return EmCandidate(code=code, level=em_level(code), confidence=confidence)


def build_candidates(bundle: SuggestionBundle) -> List[EmCandidate]:
    candidates: List[EmCandidate] = []
    if bundle.em_suggested:
        primary_confidence = (
            bundle.em_confidence if bundle.em_confidence is not None else DEFAULT_PRIMARY_CONFIDENCE
        )
        candidates.append(_candidate(bundle.em_suggested, primary_confidence))
    base = bundle.em_confidence or 0.0
    for alternative in bundle.em_alternatives:
        if alternative.confidence is not None:
            confidence = alternative.confidence
        else:
            floor = RECOMMENDED_ALTERNATIVE_FLOOR if alternative.recommended else ALTERNATIVE_FLOOR
            confidence = max(base, floor)
        candidates.append(_candidate(alternative.code, confidence))
    return candidates


def _first_max(candidates: List[EmCandidate], key) -> Optional[EmCandidate]:
    best: Optional[EmCandidate] = None
    for candidate in candidates:
        # Strict comparison keeps the first occurrence on ties.
        if best is None or key(candidate) > key(best):
            best = candidate
    return best


def select_em_code(bundle: SuggestionBundle) -> EmSelection:
    candidates = build_candidates(bundle)
    supported = [candidate for candidate in candidates if candidate.supported]

    recommended: Optional[EmCandidate] = None
    if bundle.em_suggested and is_valid_em_code(bundle.em_suggested):
        primary = candidates[0]
        if primary.level is not None:
            recommended = primary
    if recommended is None:
        recommended = _first_max(supported, lambda candidate: candidate.confidence)

    highest = _first_max(supported, lambda candidate: candidate.level)
    has_delta = (
        recommended is not None
        and highest is not None
        and recommended.level is not None
        and highest.level > recommended.level
    )
    return EmSelection(
        recommended=recommended,
        highest_supported=highest,
        has_undercode_delta=has_delta,
        candidates=candidates,
    )


__all__ = [
    "DEFAULT_PRIMARY_CONFIDENCE",
    "RECOMMENDED_ALTERNATIVE_FLOOR",
    "ALTERNATIVE_FLOOR",
    "SUPPORT_FLOOR",
    "EmCandidate",
    "EmSelection",
    "confidence_bucket",
    "em_level",
    "build_candidates",
    "select_em_code",
]
