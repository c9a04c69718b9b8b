"""Scoring of submitted codes against gold-standard cases.

Two contexts share the recall computation but differ on purpose:

* training attempts (a human coder) use a family-based E/M near match,
  0.7 partial credit and weights E/M 50% / diagnoses 30% / procedures 20%,
  with the percentage rounded to an integer;
* model evaluation uses a level-table E/M near match, 0.5 partial credit
  and weights E/M 40% / diagnoses 40% / procedures 20%, unrounded.

Both near-match rules are kept until product confirms which one is meant.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from codepilot.code_formats import normalize_code

TRAINING_WEIGHTS = {"em": 0.5, "dx": 0.3, "proc": 0.2}
EVALUATION_WEIGHTS = {"em": 0.4, "dx": 0.4, "proc": 0.2}
TRAINING_NEAR_CREDIT = 0.7
EVALUATION_NEAR_CREDIT = 0.5

EM_LEVELS: Dict[str, int] = {
    "99211": 1,
    "99212": 2,
    "99213": 3,
    "99214": 4,
    "99215": 5,
}

_EM_FAMILY_RE = re.compile(r"^(\d{3})(\d{2})$")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CodeMatch:
    correct_count: int
    total_correct: int
    extra_count: int
    missing_codes: List[str] = field(default_factory=list)
    extra_codes: List[str] = field(default_factory=list)
    score: float = 0.0

    def to_wire(self) -> Dict[str, Any]:
        return {
            "correctCount": self.correct_count,
            "totalCorrect": self.total_correct,
            "extraCount": self.extra_count,
            "missingCodes": list(self.missing_codes),
            "extraCodes": list(self.extra_codes),
        }


@dataclass(frozen=True)
class EmMatch:
    is_exact: bool
    is_near: bool


@dataclass(frozen=True)
class MatchSummary:
    em: EmMatch
    diagnoses: CodeMatch
    procedures: CodeMatch

    def to_wire(self) -> Dict[str, Any]:
        return {
            "em": {"isExact": self.em.is_exact, "isNear": self.em.is_near},
            "diagnoses": self.diagnoses.to_wire(),
            "procedures": self.procedures.to_wire(),
        }


@dataclass(frozen=True)
class AttemptScore:
    em_exact: bool
    em_near: bool
    dx_score: float
    proc_score: float
    score_percent: float
    match_summary: MatchSummary

    @classmethod
    def zero(cls, total_dx: int = 0, total_proc: int = 0) -> "AttemptScore":
        summary = MatchSummary(
            em=EmMatch(is_exact=False, is_near=False),
            diagnoses=CodeMatch(correct_count=0, total_correct=total_dx, extra_count=0),
            procedures=CodeMatch(correct_count=0, total_correct=total_proc, extra_count=0),
        )
        return cls(
            em_exact=False,
            em_near=False,
            dx_score=0.0,
            proc_score=0.0,
            score_percent=0.0,
            match_summary=summary,
        )


class GoldStandardCase(BaseModel):
    """Pre-authored case with known-correct codes; code lists may be stored as JSON text."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    title: str = ""
    specialty: str = ""
    note_text: str = Field(default="", alias="noteText")
    correct_em_code: str = Field(default="", alias="correctEmCode")
    correct_diagnosis_codes: List[str] = Field(default_factory=list, alias="correctDiagnosisCodes")
    correct_procedure_codes: List[str] = Field(default_factory=list, alias="correctProcedureCodes")

    @field_validator("correct_diagnosis_codes", "correct_procedure_codes", mode="before")
    @classmethod
    def _decode_code_list(cls, value: Any) -> List[str]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return []
        if not isinstance(value, (list, tuple)):
            return []
        return [item for item in value if isinstance(item, str)]


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _ordered_codes(codes: Optional[Iterable[Any]]) -> List[str]:
    """Normalized, de-duplicated codes in first-occurrence order."""

    if not codes:
        return []
    normalized = (normalize_code(code) for code in codes)
    return list(dict.fromkeys(code for code in normalized if code))


def match_codes(submitted: Optional[Iterable[Any]], correct: Optional[Iterable[Any]]) -> CodeMatch:
    """Recall of ``submitted`` against ``correct`` plus exact set differences.

    An empty gold set scores 1.0 only when nothing was submitted, so
    hallucinated codes are penalized when none were expected.
    """

    submitted_codes = _ordered_codes(submitted)
    correct_codes = _ordered_codes(correct)
    submitted_set = set(submitted_codes)
    correct_set = set(correct_codes)

    hits = [code for code in submitted_codes if code in correct_set]
    missing = [code for code in correct_codes if code not in submitted_set]
    extra = [code for code in submitted_codes if code not in correct_set]

    if correct_codes:
        score = len(hits) / len(correct_codes)
    else:
        score = 1.0 if not submitted_codes else 0.0

    return CodeMatch(
        correct_count=len(hits),
        total_correct=len(correct_codes),
        extra_count=len(extra),
        missing_codes=missing,
        extra_codes=extra,
        score=score,
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# Training attempts
# ---------------------------------------------------------------------------


def is_em_near_training(user_code: Any, correct_code: Any) -> bool:
    """Same three-digit family and final two digits within one of each other."""

    user_match = _EM_FAMILY_RE.match(normalize_code(user_code))
    correct_match = _EM_FAMILY_RE.match(normalize_code(correct_code))
    if not user_match or not correct_match:
        return False
    if user_match.group(1) != correct_match.group(1):
        return False
    return abs(int(user_match.group(2)) - int(correct_match.group(2))) <= 1


def score_training_attempt(
    user_em_code: Optional[str],
    user_diagnosis_codes: Optional[Iterable[str]],
    user_procedure_codes: Optional[Iterable[str]],
    case: GoldStandardCase,
) -> AttemptScore:
    user_em = normalize_code(user_em_code)
    correct_em = normalize_code(case.correct_em_code)
    em_exact = bool(correct_em) and user_em == correct_em
    em_near = not em_exact and is_em_near_training(user_em, correct_em)

    dx = match_codes(user_diagnosis_codes, case.correct_diagnosis_codes)
    proc = match_codes(user_procedure_codes, case.correct_procedure_codes)

    em_score = 1.0 if em_exact else TRAINING_NEAR_CREDIT if em_near else 0.0
    weighted = (
        em_score * TRAINING_WEIGHTS["em"]
        + dx.score * TRAINING_WEIGHTS["dx"]
        + proc.score * TRAINING_WEIGHTS["proc"]
    )
    return AttemptScore(
        em_exact=em_exact,
        em_near=em_near,
        dx_score=dx.score,
        proc_score=proc.score,
        score_percent=float(_round_half_up(weighted * 100)),
        match_summary=MatchSummary(em=EmMatch(em_exact, em_near), diagnoses=dx, procedures=proc),
    )


# ---------------------------------------------------------------------------
# Model evaluation
# ---------------------------------------------------------------------------


def em_table_level(code: Any) -> Optional[int]:
    return EM_LEVELS.get(normalize_code(code))


def is_em_near_evaluation(submitted_code: Any, correct_code: Any) -> bool:
    """Levels from the fixed office-visit table within one of each other (exact included)."""

    submitted_level = em_table_level(submitted_code)
    correct_level = em_table_level(correct_code)
    if submitted_level is None or correct_level is None:
        return False
    return abs(submitted_level - correct_level) <= 1


def score_evaluation_case(
    submitted_em_code: Optional[str],
    submitted_diagnosis_codes: Optional[Iterable[str]],
    submitted_procedure_codes: Optional[Iterable[str]],
    case: GoldStandardCase,
) -> AttemptScore:
    submitted_em = normalize_code(submitted_em_code)
    correct_em = normalize_code(case.correct_em_code)
    em_exact = bool(correct_em) and submitted_em == correct_em
    em_near = is_em_near_evaluation(submitted_em, correct_em)

    dx = match_codes(submitted_diagnosis_codes, case.correct_diagnosis_codes)
    proc = match_codes(submitted_procedure_codes, case.correct_procedure_codes)

    em_score = 1.0 if em_exact else EVALUATION_NEAR_CREDIT if em_near else 0.0
    weighted = (
        em_score * EVALUATION_WEIGHTS["em"]
        + dx.score * EVALUATION_WEIGHTS["dx"]
        + proc.score * EVALUATION_WEIGHTS["proc"]
    )
    return AttemptScore(
        em_exact=em_exact,
        em_near=em_near,
        dx_score=dx.score,
        proc_score=proc.score,
        score_percent=weighted * 100,
        match_summary=MatchSummary(em=EmMatch(em_exact, em_near), diagnoses=dx, procedures=proc),
    )


__all__ = [
    "TRAINING_WEIGHTS",
    "EVALUATION_WEIGHTS",
    "TRAINING_NEAR_CREDIT",
    "EVALUATION_NEAR_CREDIT",
    "EM_LEVELS",
    "CodeMatch",
    "EmMatch",
    "MatchSummary",
    "AttemptScore",
    "GoldStandardCase",
    "match_codes",
    "is_em_near_training",
    "score_training_attempt",
    "em_table_level",
    "is_em_near_evaluation",
    "score_evaluation_case",
]
