"""Deterministic offline suggestion source.

Backs the pipeline when ``LLM_MODE=mock`` and serves as the fallback for the
OpenAI source.  A handful of keyword rules produce stable suggestions so the
rest of the system can run without network access.
"""

from __future__ import annotations

from typing import Any, Dict, List

from codepilot.em_selection import confidence_bucket
from codepilot.sources import SuggestionRequest, SuggestionSource, decode_or_raise
from codepilot.suggestions import RawSuggestions

OFFLINE_EM_CODE = "99213"
OFFLINE_EM_CONFIDENCE = 0.8


def _diagnoses(text: str) -> List[Dict[str, Any]]:
    results: List[Dict[str, Any]] = []
    if "diabetes" in text or "metformin" in text:
        results.append(
            {
                "code": "E11.9",
                "description": "Type 2 diabetes mellitus without complications",
                "confidence": 0.9,
                "noteSnippets": ["Mention of diabetes or metformin in note"],
            }
        )
    if "hypertension" in text or "bp " in text:
        results.append(
            {
                "code": "I10",
                "description": "Essential (primary) hypertension",
                "confidence": 0.85,
                "noteSnippets": ["Mention of hypertension or blood pressure in note"],
            }
        )
    return results


def _procedures(text: str) -> List[Dict[str, Any]]:
    if "b12" not in text:
        return []
    return [
        {
            "code": "J3420",
            "description": "Injection, vitamin B12 (cyanocobalamin), up to 1,000 mcg",
            "confidence": 0.88,
            "noteSnippets": ["B12 injection mentioned in note"],
            "withinCuratedSet": True,
        }
    ]


def offline_suggestions(note_text: str) -> Dict[str, Any]:
    """Return the deterministic suggestion payload for ``note_text``."""

    text = note_text.lower()
    procedures = _procedures(text)
    return {
        "emSuggested": OFFLINE_EM_CODE,
        "emAlternatives": [
            {"code": "99212", "label": "lower complexity", "recommended": False},
            {"code": OFFLINE_EM_CODE, "label": "recommended", "recommended": True},
        ],
        "emConfidence": OFFLINE_EM_CONFIDENCE,
        "diagnoses": _diagnoses(text),
        "procedures": procedures,
        "confidenceBucket": confidence_bucket(OFFLINE_EM_CONFIDENCE),
        "denialRiskLevel": "low",
        "denialRiskReasons": ["No obvious denial risks detected based on the current documentation."],
        "hadUndercodeHint": True,
        "hadMissedServiceHint": bool(procedures),
    }


class MockSuggestionSource(SuggestionSource):
    """Keyword driven source that never touches the network."""

    @property
    def model_id(self) -> str:
        return "mock"

    def fetch(self, request: SuggestionRequest) -> RawSuggestions:
        return decode_or_raise(offline_suggestions(request.note_text), source=self.model_id)


__all__ = ["OFFLINE_EM_CODE", "OFFLINE_EM_CONFIDENCE", "offline_suggestions", "MockSuggestionSource"]
