"""AI coding suggestion pipeline for encounter notes."""

from __future__ import annotations

from codepilot.code_diffs import CodeDiffs, FinalCode, compute_code_diffs
from codepilot.config import SuggestionSettings, get_suggestion_settings
from codepilot.em_selection import EmSelection, select_em_code
from codepilot.errors import EmptyNoteError, SourceError, SuggestionError, SuggestionParseError
from codepilot.pipeline import SuggestionOutcome, SuggestionPipeline
from codepilot.registry import SourceRegistry
from codepilot.safety import clean_suggestions
from codepilot.scoring import GoldStandardCase, score_evaluation_case, score_training_attempt
from codepilot.suggestions import CleanedSuggestions, SafetySummary, SuggestionBundle

__all__ = [
    "CodeDiffs",
    "FinalCode",
    "compute_code_diffs",
    "SuggestionSettings",
    "get_suggestion_settings",
    "EmSelection",
    "select_em_code",
    "EmptyNoteError",
    "SourceError",
    "SuggestionError",
    "SuggestionParseError",
    "SuggestionOutcome",
    "SuggestionPipeline",
    "SourceRegistry",
    "clean_suggestions",
    "GoldStandardCase",
    "score_evaluation_case",
    "score_training_attempt",
    "CleanedSuggestions",
    "SafetySummary",
    "SuggestionBundle",
]
