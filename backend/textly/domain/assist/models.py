"""Assistant preferences persisted per user."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Literal, Mapping

WritingMode = Literal["formal", "informal"]
TranslationLanguage = Literal["es", "en", "pt", "it", "de"]
AssistAction = Literal["improve", "translate"]

WRITING_MODES = ("formal", "informal")
TRANSLATION_LANGUAGES = ("es", "en", "pt", "it", "de")


@dataclass(slots=True, frozen=True)
class AssistPreferences:
    assistant_enabled: bool = True
    writing_mode: WritingMode = "informal"
    translation_language: TranslationLanguage = "es"

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "AssistPreferences":
        defaults = cls()
        mode = record.get("writing_mode")
        language = record.get("translation_language")
        enabled = record.get("assistant_enabled")
        return cls(
            assistant_enabled=defaults.assistant_enabled if enabled is None else bool(enabled),
            writing_mode=mode if mode in WRITING_MODES else defaults.writing_mode,
            translation_language=language if language in TRANSLATION_LANGUAGES else defaults.translation_language,
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "assistant_enabled": self.assistant_enabled,
            "writing_mode": self.writing_mode,
            "translation_language": self.translation_language,
        }

    def with_changes(self, **changes: Any) -> "AssistPreferences":
        unknown = set(changes) - {"assistant_enabled", "writing_mode", "translation_language"}
        if unknown:
            raise TypeError(f"unknown preference fields: {sorted(unknown)}")
        if "writing_mode" in changes and changes["writing_mode"] not in WRITING_MODES:
            raise ValueError(f"invalid writing_mode: {changes['writing_mode']!r}")
        if "translation_language" in changes and changes["translation_language"] not in TRANSLATION_LANGUAGES:
            raise ValueError(f"invalid translation_language: {changes['translation_language']!r}")
        return replace(self, **changes)
