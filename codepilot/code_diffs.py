"""Diffs between two snapshots of human-finalized codes.

Diagnoses are compared by set membership on ``code`` alone.  Procedures are
compared as modifications: an entry present under the same code in both
snapshots is reported when its description, modifiers or source changed.
Nothing in this module raises; missing or malformed inputs count as empty.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


logger = structlog.get_logger(__name__)

USER_CHANGED_EM_CODE = "USER_CHANGED_EM_CODE"
USER_ADDED_DIAGNOSIS = "USER_ADDED_DIAGNOSIS"
USER_REMOVED_DIAGNOSIS = "USER_REMOVED_DIAGNOSIS"
USER_CHANGED_PROCEDURE = "USER_CHANGED_PROCEDURE"


class FinalCode(BaseModel):
    """A billed diagnosis or procedure code owned by a human."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    code: str
    description: str = ""
    source: Literal["ai", "user"] = "user"
    modifiers: Optional[List[str]] = None

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("source", mode="before")
    @classmethod
    def _coerce_source(cls, value: Any) -> str:
        return "ai" if value == "ai" else "user"

    @field_validator("modifiers", mode="before")
    @classmethod
    def _coerce_modifiers(cls, value: Any) -> Optional[List[str]]:
        if value is None:
            return None
        if not isinstance(value, (list, tuple)):
            return []
        return [str(item) for item in value if item is not None]

    def modifier_key(self) -> str:
        return ",".join(sorted(self.modifiers or []))


def decode_final_codes(value: Any) -> List[FinalCode]:
    """Decode stored final codes (list or JSON text); unreadable entries are skipped."""

    if isinstance(value, (str, bytes, bytearray)):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, (list, tuple)):
        return []
    codes: List[FinalCode] = []
    for entry in value:
        if isinstance(entry, FinalCode):
            codes.append(entry)
            continue
        try:
            codes.append(FinalCode.model_validate(entry))
        except ValidationError:
            logger.debug("final_code_skipped", entry_type=type(entry).__name__)
    return codes


def encode_final_codes(codes: Optional[Iterable[FinalCode]]) -> List[Dict[str, Any]]:
    if not codes:
        return []
    return [code.model_dump(exclude_none=True) for code in codes]


@dataclass(frozen=True)
class ProcedureChange:
    before: FinalCode
    after: FinalCode


@dataclass(frozen=True)
class EmCodeChange:
    from_code: Optional[str]
    to_code: Optional[str]

    def to_wire(self) -> Dict[str, Optional[str]]:
        return {"from": self.from_code, "to": self.to_code}


@dataclass(frozen=True)
class CodeDiffs:
    added_diagnoses: List[FinalCode] = field(default_factory=list)
    removed_diagnoses: List[FinalCode] = field(default_factory=list)
    changed_procedures: List[ProcedureChange] = field(default_factory=list)
    em_code_changed: Optional[EmCodeChange] = None

    def is_empty(self) -> bool:
        return not (
            self.added_diagnoses
            or self.removed_diagnoses
            or self.changed_procedures
            or self.em_code_changed
        )


def compute_code_diffs(
    prev_diagnoses: Any = None,
    next_diagnoses: Any = None,
    prev_procedures: Any = None,
    next_procedures: Any = None,
    prev_em_code: Optional[str] = None,
    next_em_code: Optional[str] = None,
) -> CodeDiffs:
    prev_dx = decode_final_codes(prev_diagnoses)
    next_dx = decode_final_codes(next_diagnoses)

    prev_dx_codes = {entry.code for entry in prev_dx}
    next_dx_codes = {entry.code for entry in next_dx}
    added = [entry for entry in next_dx if entry.code not in prev_dx_codes]
    removed = [entry for entry in prev_dx if entry.code not in next_dx_codes]

    # Later duplicates under the same code win, as in a code-keyed map.
    prev_proc = {entry.code: entry for entry in decode_final_codes(prev_procedures)}
    next_proc = {entry.code: entry for entry in decode_final_codes(next_procedures)}
    changed: List[ProcedureChange] = []
    for code, before in prev_proc.items():
        after = next_proc.get(code)
        if after is None:
            continue
        if (
            before.description != after.description
            or before.modifier_key() != after.modifier_key()
            or before.source != after.source
        ):
            changed.append(ProcedureChange(before=before, after=after))

    em_change = None
    if prev_em_code != next_em_code:
        em_change = EmCodeChange(from_code=prev_em_code or None, to_code=next_em_code or None)

    return CodeDiffs(
        added_diagnoses=added,
        removed_diagnoses=removed,
        changed_procedures=changed,
        em_code_changed=em_change,
    )


# ---------------------------------------------------------------------------
# Update and audit helpers
# ---------------------------------------------------------------------------


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class EncounterCodes:
    """Snapshot of the final codes recorded on an encounter."""

    em_code: Optional[str] = None
    diagnoses: List[FinalCode] = field(default_factory=list)
    procedures: List[FinalCode] = field(default_factory=list)


def apply_code_update(
    current: EncounterCodes,
    *,
    em_code: Any = UNSET,
    diagnoses: Any = UNSET,
    procedures: Any = UNSET,
) -> Tuple[EncounterCodes, CodeDiffs]:
    """Return the next snapshot and its diff against ``current``.

    Arguments left as ``UNSET`` keep their previous value; ``None`` clears a
    code list.
    """

    next_em = current.em_code if em_code is UNSET else em_code
    next_dx = current.diagnoses if diagnoses is UNSET else decode_final_codes(diagnoses)
    next_proc = current.procedures if procedures is UNSET else decode_final_codes(procedures)
    updated = EncounterCodes(em_code=next_em, diagnoses=next_dx, procedures=next_proc)
    diffs = compute_code_diffs(
        current.diagnoses,
        next_dx,
        current.procedures,
        next_proc,
        current.em_code,
        next_em,
    )
    return updated, diffs


@dataclass(frozen=True)
class CodeAuditEvent:
    action: str
    payload: Dict[str, Any]


def audit_events(diffs: CodeDiffs) -> List[CodeAuditEvent]:
    """One audit event per non-empty diff category, in a stable order."""

    events: List[CodeAuditEvent] = []
    if diffs.em_code_changed is not None:
        events.append(
            CodeAuditEvent(
                USER_CHANGED_EM_CODE,
                {"field": "finalEmCode", **diffs.em_code_changed.to_wire()},
            )
        )
    if diffs.added_diagnoses:
        events.append(
            CodeAuditEvent(
                USER_ADDED_DIAGNOSIS,
                {
                    "field": "diagnosisCodes",
                    "added": [entry.code for entry in diffs.added_diagnoses],
                    "removed": [],
                },
            )
        )
    if diffs.removed_diagnoses:
        events.append(
            CodeAuditEvent(
                USER_REMOVED_DIAGNOSIS,
                {
                    "field": "diagnosisCodes",
                    "added": [],
                    "removed": [entry.code for entry in diffs.removed_diagnoses],
                },
            )
        )
    if diffs.changed_procedures:
        events.append(
            CodeAuditEvent(
                USER_CHANGED_PROCEDURE,
                {
                    "field": "procedureCodes",
                    "added": [change.after.code for change in diffs.changed_procedures],
                    "removed": [change.before.code for change in diffs.changed_procedures],
                },
            )
        )
    return events


def finalization_blockers(codes: EncounterCodes) -> List[str]:
    """Reasons ``codes`` cannot be finalized yet; empty when ready."""

    blockers: List[str] = []
    if not codes.em_code:
        blockers.append("finalEmCode is required to finalize")
    if not codes.diagnoses:
        blockers.append("At least one diagnosis code is required to finalize")
    return blockers


__all__ = [
    "FinalCode",
    "decode_final_codes",
    "encode_final_codes",
    "ProcedureChange",
    "EmCodeChange",
    "CodeDiffs",
    "compute_code_diffs",
    "UNSET",
    "EncounterCodes",
    "apply_code_update",
    "CodeAuditEvent",
    "audit_events",
    "finalization_blockers",
    "USER_CHANGED_EM_CODE",
    "USER_ADDED_DIAGNOSIS",
    "USER_REMOVED_DIAGNOSIS",
    "USER_CHANGED_PROCEDURE",
]
