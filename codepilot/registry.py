"""Per-process registry of configured suggestion sources.

The registry is built once (per process or per request context) and passed
into the pipeline.  It memoizes one :class:`SafeSuggestionSource` per mode,
keyed purely on configuration, so tests can supply deterministic factories
without touching shared module state.
"""

from __future__ import annotations

from typing import Callable, Dict, Mapping, Optional

from codepilot.config import SuggestionSettings
from codepilot.offline_model import MockSuggestionSource
from codepilot.openai_client import OpenAISuggestionSource
from codepilot.sources import SafeSuggestionSource

SourceFactory = Callable[[SuggestionSettings], SafeSuggestionSource]


def _mock_factory(settings: SuggestionSettings) -> SafeSuggestionSource:
    return SafeSuggestionSource(MockSuggestionSource())


def _openai_factory(settings: SuggestionSettings) -> SafeSuggestionSource:
    return SafeSuggestionSource(OpenAISuggestionSource(settings), fallback=MockSuggestionSource())


DEFAULT_FACTORIES: Mapping[str, SourceFactory] = {
    "mock": _mock_factory,
    "openai": _openai_factory,
}


class SourceRegistry:
    def __init__(
        self,
        settings: SuggestionSettings,
        factories: Optional[Mapping[str, SourceFactory]] = None,
    ) -> None:
        self.settings = settings
        self._factories: Dict[str, SourceFactory] = dict(DEFAULT_FACTORIES)
        if factories:
            self._factories.update(factories)
        self._sources: Dict[str, SafeSuggestionSource] = {}

    def resolve_mode(self, mode: Optional[str] = None) -> str:
        resolved = (mode or self.settings.mode).strip().lower()
        if resolved not in self._factories:
            raise ValueError(
                f"Unknown suggestion mode {resolved!r}; expected one of {sorted(self._factories)}"
            )
        return resolved

    def get(self, mode: Optional[str] = None) -> SafeSuggestionSource:
        """Return (and cache) the source configured for ``mode``."""

        resolved = self.resolve_mode(mode)
        if resolved not in self._sources:
            self._sources[resolved] = self._factories[resolved](self.settings)
        return self._sources[resolved]

    def model_id(self, mode: Optional[str] = None) -> str:
        return self.get(mode).model_id

    def clear(self) -> None:
        self._sources.clear()


__all__ = ["SourceFactory", "DEFAULT_FACTORIES", "SourceRegistry"]
