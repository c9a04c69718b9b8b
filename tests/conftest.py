import os
import sys
from typing import Iterator, List

import pytest

# Ensure the repository root is on sys.path so tests can import the codepilot package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from codepilot import config
from codepilot.config import SuggestionSettings
from codepilot.errors import SourceError, SuggestionParseError
from codepilot.sources import SuggestionRequest, SuggestionSource, decode_or_raise


class StaticSource(SuggestionSource):
    """Source returning a fixed payload and recording every request."""

    def __init__(self, payload, model_id: str = "static") -> None:
        self.payload = payload
        self._model_id = model_id
        self.requests: List[SuggestionRequest] = []

    @property
    def model_id(self) -> str:
        return self._model_id

    def fetch(self, request):
        self.requests.append(request)
        return decode_or_raise(self.payload, source=self._model_id)


class FailingSource(SuggestionSource):
    """Source that always raises ``error``."""

    def __init__(self, error: Exception, model_id: str = "failing") -> None:
        self.error = error
        self._model_id = model_id
        self.calls = 0

    @property
    def model_id(self) -> str:
        return self._model_id

    def fetch(self, request):
        self.calls += 1
        raise self.error


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Iterator[None]:
    """Clear cached settings between tests."""
    config.get_suggestion_settings.cache_clear()
    yield
    config.get_suggestion_settings.cache_clear()


@pytest.fixture
def mock_settings() -> SuggestionSettings:
    return SuggestionSettings(mode="mock")


@pytest.fixture
def openai_settings() -> SuggestionSettings:
    return SuggestionSettings(mode="openai", openai_api_key="sk-test", openai_model="gpt-test")


@pytest.fixture
def clean_payload() -> dict:
    return {
        "emSuggested": "99213",
        "emAlternatives": [
            {"code": "99212", "label": "lower complexity", "recommended": False},
            {"code": "99213", "label": "recommended", "recommended": True},
        ],
        "emConfidence": 0.8,
        "diagnoses": [
            {
                "code": "E11.9",
                "description": "Type 2 diabetes mellitus without complications",
                "confidence": 0.9,
                "noteSnippets": ["on metformin"],
            }
        ],
        "procedures": [],
        "confidenceBucket": "high",
        "denialRiskLevel": "low",
        "denialRiskReasons": [],
        "hadUndercodeHint": False,
        "hadMissedServiceHint": False,
    }


@pytest.fixture
def transport_error() -> SourceError:
    return SourceError("backend unreachable", cause=ConnectionError("refused"))


@pytest.fixture
def parse_error() -> SuggestionParseError:
    return SuggestionParseError("not json")
