from codepilot import prompts
from codepilot.offline_model import MockSuggestionSource, offline_suggestions
from codepilot.safety import clean_suggestions
from codepilot.sources import SuggestionRequest


def test_offline_suggestions_are_deterministic():
    note = "Diabetes on metformin, B12 injection given"
    assert offline_suggestions(note) == offline_suggestions(note)


def test_keywords_drive_codes():
    payload = offline_suggestions("HYPERTENSION recheck; B12 shot today")
    assert [dx["code"] for dx in payload["diagnoses"]] == ["I10"]
    assert [proc["code"] for proc in payload["procedures"]] == ["J3420"]
    assert payload["procedures"][0]["withinCuratedSet"] is True
    assert payload["hadMissedServiceHint"] is True
    assert payload["confidenceBucket"] == "high"


def test_plain_note_still_suggests_a_visit_level():
    payload = offline_suggestions("Routine visit, no complaints")
    assert payload["emSuggested"] == "99213"
    assert payload["diagnoses"] == []
    assert payload["procedures"] == []
    assert payload["hadMissedServiceHint"] is False


def test_offline_output_survives_cleaning_untouched():
    raw = MockSuggestionSource().fetch(SuggestionRequest(note_text="diabetes and hypertension, b12"))
    cleaned = clean_suggestions(raw)
    assert not cleaned.safety_summary.has_issues
    assert [dx.code for dx in cleaned.bundle.diagnoses] == ["E11.9", "I10"]
    assert [proc.code for proc in cleaned.bundle.procedures] == ["J3420"]


def test_suggestion_prompt_pins_json_schema():
    messages = prompts.build_suggestion_prompt("Patient note", "established", "cardiology")
    system, user = messages
    assert system["role"] == "system"
    assert "cardiology encounters" in system["content"]
    assert prompts.SUGGESTION_SCHEMA in system["content"]
    assert user["role"] == "user"
    assert "Visit Type: established" in user["content"]
    assert "Patient note" in user["content"]


def test_blank_specialty_falls_back_to_outpatient():
    system, _ = prompts.build_suggestion_prompt("note", "", "  ")
    assert "outpatient encounters" in system["content"]
