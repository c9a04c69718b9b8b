import json

import pytest

from codepilot.code_diffs import (
    USER_ADDED_DIAGNOSIS,
    USER_CHANGED_EM_CODE,
    USER_CHANGED_PROCEDURE,
    USER_REMOVED_DIAGNOSIS,
    EncounterCodes,
    FinalCode,
    apply_code_update,
    audit_events,
    compute_code_diffs,
    decode_final_codes,
    encode_final_codes,
    finalization_blockers,
)


def dx(code, description="", source="user"):
    return {"code": code, "description": description, "source": source}


def proc(code, modifiers=None, description="Office procedure", source="user"):
    entry = {"code": code, "description": description, "source": source}
    if modifiers is not None:
        entry["modifiers"] = modifiers
    return entry


def test_diagnoses_diff_by_code_membership():
    diffs = compute_code_diffs([dx("A00.0"), dx("B00.0")], [dx("B00.0"), dx("C00.0")])
    assert [entry.code for entry in diffs.added_diagnoses] == ["C00.0"]
    assert [entry.code for entry in diffs.removed_diagnoses] == ["A00.0"]
    assert diffs.changed_procedures == []
    assert diffs.em_code_changed is None


def test_diagnosis_detail_changes_are_not_reported():
    diffs = compute_code_diffs([dx("E11.9", "old", "ai")], [dx("E11.9", "new", "user")])
    assert diffs.is_empty()


def test_procedure_modifier_change_is_a_modification():
    diffs = compute_code_diffs(
        prev_procedures=[proc("J3420", ["25"])],
        next_procedures=[proc("J3420", ["25", "59"])],
    )
    assert diffs.added_diagnoses == []
    assert diffs.removed_diagnoses == []
    (change,) = diffs.changed_procedures
    assert change.before.modifiers == ["25"]
    assert change.after.modifiers == ["25", "59"]


def test_modifier_order_does_not_matter():
    diffs = compute_code_diffs(
        prev_procedures=[proc("99000", ["59", "25"])],
        next_procedures=[proc("99000", ["25", "59"])],
    )
    assert diffs.changed_procedures == []


@pytest.mark.parametrize(
    "after",
    [proc("J3420", description="Changed"), proc("J3420", source="ai")],
)
def test_procedure_description_or_source_change(after):
    diffs = compute_code_diffs(prev_procedures=[proc("J3420")], next_procedures=[after])
    assert len(diffs.changed_procedures) == 1


def test_procedure_additions_and_removals_are_not_modifications():
    diffs = compute_code_diffs(prev_procedures=[proc("J3420")], next_procedures=[proc("96372")])
    assert diffs.is_empty()


def test_em_code_change():
    diffs = compute_code_diffs(prev_em_code="99213", next_em_code="99214")
    assert diffs.em_code_changed.to_wire() == {"from": "99213", "to": "99214"}
    assert compute_code_diffs(prev_em_code="99213", next_em_code="99213").em_code_changed is None
    cleared = compute_code_diffs(prev_em_code="99213", next_em_code=None)
    assert cleared.em_code_changed.to_wire() == {"from": "99213", "to": None}


@pytest.mark.parametrize("garbage", [None, "not json", 42, {"code": "E11.9"}, [None, 3, {"no": "code"}]])
def test_engine_is_total(garbage):
    diffs = compute_code_diffs(garbage, garbage, garbage, garbage)
    assert diffs.is_empty()


def test_stored_json_text_is_decoded():
    stored = json.dumps([dx("E11.9", "Diabetes", "ai")])
    (code,) = decode_final_codes(stored)
    assert code == FinalCode(code="E11.9", description="Diabetes", source="ai")
    assert encode_final_codes([code]) == [{"code": "E11.9", "description": "Diabetes", "source": "ai"}]
    assert encode_final_codes(None) == []


def test_unknown_source_defaults_to_user():
    (code,) = decode_final_codes([{"code": "I10", "source": "robot", "modifiers": "25"}])
    assert code.source == "user"
    assert code.modifiers == []


def test_apply_code_update_keeps_unset_fields():
    current = EncounterCodes(
        em_code="99213",
        diagnoses=decode_final_codes([dx("E11.9")]),
        procedures=decode_final_codes([proc("J3420")]),
    )

    updated, diffs = apply_code_update(current, diagnoses=[dx("E11.9"), dx("I10")])

    assert updated.em_code == "99213"
    assert updated.procedures == current.procedures
    assert [entry.code for entry in updated.diagnoses] == ["E11.9", "I10"]
    assert [entry.code for entry in diffs.added_diagnoses] == ["I10"]
    assert diffs.em_code_changed is None


def test_apply_code_update_none_clears_lists():
    current = EncounterCodes(em_code="99213", diagnoses=decode_final_codes([dx("E11.9")]))
    updated, diffs = apply_code_update(current, diagnoses=None, em_code="99214")
    assert updated.diagnoses == []
    assert [entry.code for entry in diffs.removed_diagnoses] == ["E11.9"]
    assert diffs.em_code_changed.to_code == "99214"


def test_audit_events_one_per_category():
    diffs = compute_code_diffs(
        [dx("A00.0"), dx("B00.0")],
        [dx("B00.0"), dx("C00.0")],
        [proc("J3420", ["25"])],
        [proc("J3420", ["59"])],
        "99213",
        "99214",
    )
    events = audit_events(diffs)
    assert [event.action for event in events] == [
        USER_CHANGED_EM_CODE,
        USER_ADDED_DIAGNOSIS,
        USER_REMOVED_DIAGNOSIS,
        USER_CHANGED_PROCEDURE,
    ]
    assert events[0].payload == {"field": "finalEmCode", "from": "99213", "to": "99214"}
    assert events[1].payload["added"] == ["C00.0"]
    assert events[2].payload["removed"] == ["A00.0"]
    assert events[3].payload == {"field": "procedureCodes", "added": ["J3420"], "removed": ["J3420"]}


def test_no_audit_events_for_empty_diff():
    assert audit_events(compute_code_diffs()) == []


def test_finalization_blockers():
    assert finalization_blockers(EncounterCodes()) == [
        "finalEmCode is required to finalize",
        "At least one diagnosis code is required to finalize",
    ]
    ready = EncounterCodes(em_code="99213", diagnoses=decode_final_codes([dx("I10")]))
    assert finalization_blockers(ready) == []
