"""Fixed instruction templates sent to the language model."""

from __future__ import annotations

from textly.domain.assist.models import AssistAction, AssistPreferences, TranslationLanguage, WritingMode

LANGUAGE_LABELS: dict[TranslationLanguage, str] = {
	"es": "Spanish",
	"en": "English",
	"pt": "Portuguese",
	"it": "Italian",
	"de": "German",
}

_IMPROVE_TEMPLATE = """Improve the following chat message.
Rules:
- Keep the original language.
- Do not translate it into another language.
- Improve clarity, wording and spelling.
- Keep the same meaning and intent.
- Use a {tone} tone.
- Do not add new information.
- Do not explain anything.
- Return ONLY the final text, without quotes or comments.

Message:
{text}"""

_TRANSLATE_TEMPLATE = """Translate the following message.
Rules:
- Translate into the target language: {language}.
- Keep the original meaning and intent.
- Use a {tone} tone.
- Do not add new information.
- Do not explain anything.
- Return ONLY the final text, without quotes or comments.

Message:
{text}"""


def tone_for(mode: WritingMode) -> str:
	return "formal and professional" if mode == "formal" else "informal and natural"


def build_prompt(action: AssistAction, text: str, preferences: AssistPreferences) -> str:
	tone = tone_for(preferences.writing_mode)
	if action == "improve":
		return _IMPROVE_TEMPLATE.format(tone=tone, text=text)
	if action == "translate":
		language = LANGUAGE_LABELS[preferences.translation_language]
		return _TRANSLATE_TEMPLATE.format(tone=tone, language=language, text=text)
	raise ValueError(f"unknown assist action: {action!r}")
