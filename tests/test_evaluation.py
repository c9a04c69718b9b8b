import pytest

from codepilot.errors import SOURCE_ERROR, SourceError
from codepilot.evaluation import (
    evaluate_case,
    evaluate_profiles,
    evaluate_source,
    iter_case_evaluations,
    profile_model_id,
    summarize_evaluations,
)
from codepilot.offline_model import offline_suggestions
from codepilot.registry import SourceRegistry
from codepilot.scoring import GoldStandardCase
from codepilot.sources import SafeSuggestionSource, SuggestionSource, decode_or_raise


class FlakySource(SuggestionSource):
    """Offline suggestions, except for notes mentioning ``outage``."""

    def __init__(self):
        self.notes = []

    @property
    def model_id(self):
        return "flaky"

    def fetch(self, request):
        self.notes.append(request.note_text)
        if "outage" in request.note_text:
            raise SourceError("backend unavailable")
        return decode_or_raise(offline_suggestions(request.note_text), source=self.model_id)


def _case(case_id, note, em="99213", dx=(), proc=()):
    return GoldStandardCase(
        id=case_id,
        noteText=note,
        specialty="family",
        correctEmCode=em,
        correctDiagnosisCodes=list(dx),
        correctProcedureCodes=list(proc),
    )


@pytest.fixture
def cases():
    return [
        _case("dm", "Diabetes follow-up", dx=["E11.9"]),
        _case("down", "Clinic outage note", dx=["I10", "E11.9"], proc=["J3420"]),
        _case("htn", "Hypertension check", em="99214", dx=["I10"], proc=["J3420"]),
    ]


def test_failed_case_scores_zero_and_batch_continues(cases):
    source = FlakySource()
    evaluations = list(iter_case_evaluations(SafeSuggestionSource(source), cases))

    assert [evaluation.case_id for evaluation in evaluations] == ["dm", "down", "htn"]
    assert len(source.notes) == 3

    failed = evaluations[1]
    assert failed.error_kind == SOURCE_ERROR
    assert failed.score.score_percent == 0
    assert failed.score.match_summary.diagnoses.total_correct == 2
    assert failed.score.match_summary.procedures.total_correct == 1

    assert evaluations[0].error_kind is None
    assert evaluations[0].score.score_percent == pytest.approx(100.0)
    # 99213 vs 99214 is a near match: 0.5 * 40 + 1.0 * 40 + 0 * 20
    assert evaluations[2].score.score_percent == pytest.approx(60.0)


def test_case_request_carries_note_and_specialty():
    seen = []

    class Recording(FlakySource):
        def fetch(self, request):
            seen.append(request)
            return super().fetch(request)

    evaluate_case(SafeSuggestionSource(Recording()), _case("dm", "Diabetes"), visit_type="new")
    (request,) = seen
    assert request.note_text == "Diabetes"
    assert request.specialty == "family"
    assert request.visit_type == "new"


def test_evaluate_source_aggregates(cases):
    result = evaluate_source(SafeSuggestionSource(FlakySource()), cases)
    assert result.model_id == "flaky"
    assert result.case_count == 3
    assert result.em_exact_rate == pytest.approx(1 / 3)
    assert result.em_near_rate == pytest.approx(2 / 3)
    assert result.avg_score_percent == pytest.approx(160 / 3)
    wire = result.to_wire()
    assert wire["modelId"] == "flaky"
    assert wire["caseCount"] == 3


def test_evaluate_source_respects_limit(cases):
    source = FlakySource()
    result = evaluate_source(SafeSuggestionSource(source), cases, model_id="custom", limit=1)
    assert result.case_count == 1
    assert result.model_id == "custom"
    assert source.notes == ["Diabetes follow-up"]


def test_empty_batch_summary():
    result = summarize_evaluations("mock", [])
    assert result.case_count == 0
    assert result.avg_score_percent == 0.0


def test_profiles_label_results(mock_settings, cases):
    registry = SourceRegistry(mock_settings)
    results = evaluate_profiles(registry, cases, profiles=["fast", "thorough"])
    assert [result.model_id for result in results] == ["mock:mock:fast", "mock:mock:thorough"]
    assert all(result.case_count == 3 for result in results)

    (default,) = evaluate_profiles(registry, cases)
    assert default.model_id == "mock:mock:default"


def test_profile_model_id_for_openai(openai_settings):
    assert profile_model_id(SourceRegistry(openai_settings), "fast") == "openai:gpt-test:fast"


def test_failed_case_counts_gold_codes_like_a_scored_case():
    case = _case("dup", "outage during visit", dx=["e11.9", "E11.9 ", "I10"], proc=["j3420", "J3420"])
    failed = evaluate_case(SafeSuggestionSource(FlakySource()), case)
    assert failed.error_kind == SOURCE_ERROR
    assert failed.score.match_summary.diagnoses.total_correct == 2
    assert failed.score.match_summary.procedures.total_correct == 1
