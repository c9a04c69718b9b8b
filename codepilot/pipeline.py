"""Suggestion pipeline: note text in, cleaned suggestions and E/M selection out.

Persistence and audit logging stay with the caller; the outcome exposes
ready-made audit payloads so the caller does not need to know which fields
are contractual.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from codepilot.config import SuggestionSettings
from codepilot.em_selection import EmSelection, confidence_bucket, select_em_code
from codepilot.errors import EmptyNoteError, SourceError, SuggestionError
from codepilot.registry import SourceRegistry
from codepilot.sources import SuggestionRequest
from codepilot.suggestions import SafetySummary, SuggestionBundle


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SuggestionOutcome:
    bundle: SuggestionBundle
    safety_summary: SafetySummary
    model_id: str
    em_selection: EmSelection
    confidence_bucket: Optional[str]
    had_undercode_hint: bool
    note_truncated: bool = False

    @property
    def needs_safety_audit(self) -> bool:
        return self.safety_summary.has_issues

    def audit_payload(self) -> Dict[str, Any]:
        return {
            "type": "AI_SUGGESTION",
            "hasEm": self.bundle.em_suggested is not None,
            "dxCount": len(self.bundle.diagnoses),
            "procCount": len(self.bundle.procedures),
            "modelId": self.model_id,
        }

    def safety_audit_payload(self) -> Optional[Dict[str, Any]]:
        if not self.needs_safety_audit:
            return None
        return {
            "type": "AI_SAFETY",
            "filteredCodesCount": self.safety_summary.filtered_codes_count,
            "hadInvalidCodes": self.safety_summary.had_invalid_codes,
            "hadFormatIssues": self.safety_summary.had_format_issues,
            "modelId": self.model_id,
        }

    def to_wire(self) -> Dict[str, Any]:
        recommended = self.em_selection.recommended
        highest = self.em_selection.highest_supported
        data = self.bundle.to_wire()
        data.update(
            {
                "confidenceBucket": self.confidence_bucket,
                "hadUndercodeHint": self.had_undercode_hint,
                "emRecommended": recommended.code if recommended else None,
                "emHighestSupported": highest.code if highest else None,
                "safetySummary": self.safety_summary.to_wire(),
                "aiModelId": self.model_id,
            }
        )
        return data


class SuggestionPipeline:
    def __init__(self, registry: SourceRegistry, settings: Optional[SuggestionSettings] = None) -> None:
        self.registry = registry
        self.settings = settings or registry.settings

    def run(
        self,
        note_text: Optional[str],
        visit_type: str = "",
        specialty: str = "",
        *,
        mode: Optional[str] = None,
    ) -> SuggestionOutcome:
        """Generate cleaned suggestions for one encounter note.

        Raises:
            EmptyNoteError: ``note_text`` is blank; no source is called.
            SourceError: the source failed and no fallback recovered.
            SuggestionParseError: the source answered with unstructured content.
        """

        if not note_text or not note_text.strip():
            raise EmptyNoteError("Note text is empty")

        truncated = len(note_text) > self.settings.max_note_chars
        if truncated:
            note_text = note_text[: self.settings.max_note_chars]

        source = self.registry.get(mode)
        request = SuggestionRequest(note_text=note_text, visit_type=visit_type, specialty=specialty)
        try:
            cleaned = source.generate(request)
        except SuggestionError:
            raise
        except Exception as exc:
            raise SourceError(f"Suggestion generation failed: {exc}", cause=exc) from exc

        bundle = cleaned.bundle
        selection = select_em_code(bundle)
        bucket = bundle.confidence_bucket or confidence_bucket(bundle.em_confidence)
        outcome = SuggestionOutcome(
            bundle=bundle,
            safety_summary=cleaned.safety_summary,
            model_id=source.model_id,
            em_selection=selection,
            confidence_bucket=bucket,
            had_undercode_hint=bundle.had_undercode_hint or selection.has_undercode_delta,
            note_truncated=truncated,
        )
        logger.info(
            "suggestions_generated",
            model_id=outcome.model_id,
            dx_count=len(bundle.diagnoses),
            proc_count=len(bundle.procedures),
            em_recommended=selection.recommended.code if selection.recommended else None,
            undercode=outcome.had_undercode_hint,
            truncated=truncated,
        )
        return outcome


__all__ = ["SuggestionOutcome", "SuggestionPipeline"]
