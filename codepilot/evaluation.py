"""Batch evaluation of a suggestion source against gold-standard cases.

Cases are processed sequentially.  A case whose source call fails is recorded
as a zero score and evaluation moves on; callers iterating
:func:`iter_case_evaluations` may stop at any case boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence

import structlog

from codepilot.errors import SuggestionError
from codepilot.registry import SourceRegistry
from codepilot.scoring import AttemptScore, GoldStandardCase, match_codes, score_evaluation_case
from codepilot.sources import SafeSuggestionSource, SuggestionRequest


logger = structlog.get_logger(__name__)

DEFAULT_VISIT_TYPE = "office_established"
DEFAULT_CASE_LIMIT = 50


@dataclass(frozen=True)
class CaseEvaluation:
    case_id: str
    score: AttemptScore
    error_kind: Optional[str] = None


@dataclass(frozen=True)
class ModelEvalResult:
    model_id: str
    case_count: int
    em_exact_rate: float
    em_near_rate: float
    dx_recall: float
    proc_recall: float
    avg_score_percent: float

    def to_wire(self) -> dict:
        return {
            "modelId": self.model_id,
            "caseCount": self.case_count,
            "emExactRate": self.em_exact_rate,
            "emNearRate": self.em_near_rate,
            "dxRecall": self.dx_recall,
            "procRecall": self.proc_recall,
            "avgScorePercent": self.avg_score_percent,
        }


def evaluate_case(
    source: SafeSuggestionSource,
    case: GoldStandardCase,
    visit_type: str = DEFAULT_VISIT_TYPE,
) -> CaseEvaluation:
    request = SuggestionRequest(note_text=case.note_text, visit_type=visit_type, specialty=case.specialty)
    try:
        bundle = source.generate(request).bundle
    except SuggestionError as exc:
        logger.warning("evaluation_case_failed", case_id=case.id, kind=exc.kind, error=str(exc))
        zero = AttemptScore.zero(
            total_dx=match_codes([], case.correct_diagnosis_codes).total_correct,
            total_proc=match_codes([], case.correct_procedure_codes).total_correct,
        )
        return CaseEvaluation(case_id=case.id, score=zero, error_kind=exc.kind)
    score = score_evaluation_case(
        bundle.em_suggested,
        [entry.code for entry in bundle.diagnoses],
        [entry.code for entry in bundle.procedures],
        case,
    )
    return CaseEvaluation(case_id=case.id, score=score)


def iter_case_evaluations(
    source: SafeSuggestionSource,
    cases: Iterable[GoldStandardCase],
    visit_type: str = DEFAULT_VISIT_TYPE,
) -> Iterator[CaseEvaluation]:
    for case in cases:
        yield evaluate_case(source, case, visit_type)


def summarize_evaluations(model_id: str, evaluations: Sequence[CaseEvaluation]) -> ModelEvalResult:
    count = len(evaluations)
    if count == 0:
        return ModelEvalResult(model_id, 0, 0.0, 0.0, 0.0, 0.0, 0.0)
    scores = [evaluation.score for evaluation in evaluations]
    return ModelEvalResult(
        model_id=model_id,
        case_count=count,
        em_exact_rate=sum(1 for score in scores if score.em_exact) / count,
        em_near_rate=sum(1 for score in scores if score.em_near) / count,
        dx_recall=sum(score.dx_score for score in scores) / count,
        proc_recall=sum(score.proc_score for score in scores) / count,
        avg_score_percent=sum(score.score_percent for score in scores) / count,
    )


def evaluate_source(
    source: SafeSuggestionSource,
    cases: Sequence[GoldStandardCase],
    model_id: Optional[str] = None,
    limit: int = DEFAULT_CASE_LIMIT,
) -> ModelEvalResult:
    evaluations = list(iter_case_evaluations(source, cases[:limit]))
    result = summarize_evaluations(model_id or source.model_id, evaluations)
    logger.info(
        "model_evaluation_completed",
        model_id=result.model_id,
        cases=result.case_count,
        failed=sum(1 for evaluation in evaluations if evaluation.error_kind),
        avg_score_percent=result.avg_score_percent,
    )
    return result


def profile_model_id(registry: SourceRegistry, profile: str) -> str:
    settings = registry.settings
    model = settings.openai_model if settings.mode == "openai" else "mock"
    return f"{settings.mode}:{model}:{profile}"


def evaluate_profiles(
    registry: SourceRegistry,
    cases: Sequence[GoldStandardCase],
    profiles: Optional[Sequence[str]] = None,
    limit: int = DEFAULT_CASE_LIMIT,
) -> List[ModelEvalResult]:
    """Evaluate each profile against the same cases.

    Every profile currently runs against the configured source; the profile
    only labels the result.
    """

    source = registry.get()
    return [
        evaluate_source(source, cases, model_id=profile_model_id(registry, profile), limit=limit)
        for profile in (list(profiles or []) or ["default"])
    ]


__all__ = [
    "DEFAULT_VISIT_TYPE",
    "DEFAULT_CASE_LIMIT",
    "CaseEvaluation",
    "ModelEvalResult",
    "evaluate_case",
    "iter_case_evaluations",
    "summarize_evaluations",
    "evaluate_source",
    "profile_model_id",
    "evaluate_profiles",
]
