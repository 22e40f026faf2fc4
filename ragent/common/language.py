"""
Response Language Selection

Decides which language generated text (explanations, answers, related
queries) should be written in: an explicit override wins, otherwise the
query's language is detected with langdetect, falling back to the dominant
Unicode script for short or ambiguous queries.
"""

from dataclasses import dataclass
from typing import Optional

from langdetect import DetectorFactory, LangDetectException, detect_langs

# Seed langdetect for deterministic results
DetectorFactory.seed = 0

_LANGUAGE_NAMES = {
    "en": "English",
    "zh": "Chinese",
    "zh-cn": "Chinese",
    "zh-tw": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "pt": "Portuguese",
    "it": "Italian",
    "ru": "Russian",
}

# (first codepoint, last codepoint, language code)
_SCRIPT_RANGES = [
    (0x3040, 0x30FF, "ja"),   # Hiragana + Katakana
    (0xAC00, 0xD7AF, "ko"),   # Hangul Syllables
    (0x1100, 0x11FF, "ko"),   # Hangul Jamo
    (0x4E00, 0x9FFF, "zh"),   # CJK Unified Ideographs
    (0x3400, 0x4DBF, "zh"),   # CJK Extension A
    (0x0400, 0x04FF, "ru"),   # Cyrillic
]

# Below this many characters langdetect is unreliable
_MIN_DETECT_LENGTH = 12


@dataclass(frozen=True)
class LanguageInfo:
    """Detected language information"""
    code: str           # ISO 639-1 (lowercase)
    confidence: float   # 0.0~1.0

    @property
    def is_english(self) -> bool:
        return self.code == "en"

    @property
    def name(self) -> str:
        return _LANGUAGE_NAMES.get(self.code, self.code)


def _script_language(text: str) -> Optional[str]:
    """Language implied by the dominant non-Latin script, if any."""
    counts: dict = {}
    for ch in text:
        cp = ord(ch)
        for start, end, lang in _SCRIPT_RANGES:
            if start <= cp <= end:
                counts[lang] = counts.get(lang, 0) + 1
                break
    if not counts:
        return None
    # Japanese mixes Kanji with Kana; any Kana means Japanese
    if counts.get("ja"):
        return "ja"
    return max(counts, key=counts.get)


def detect_language(text: str) -> LanguageInfo:
    """Detect the language of a query string (English when unsure)."""
    cleaned = (text or "").strip()
    if not cleaned:
        return LanguageInfo(code="en", confidence=1.0)

    script_lang = _script_language(cleaned)

    if len(cleaned) >= _MIN_DETECT_LENGTH:
        try:
            top = detect_langs(cleaned)[0]
            code = top.lang.lower()
            if code.startswith("zh"):
                code = "zh"
            # langdetect mislabels short Latin text; only trust it when a
            # non-Latin script agrees or the probability is high
            if script_lang is None and code != "en" and top.prob < 0.9:
                return LanguageInfo(code="en", confidence=0.5)
            return LanguageInfo(code=code, confidence=round(top.prob, 4))
        except LangDetectException:
            pass

    if script_lang:
        return LanguageInfo(code=script_lang, confidence=0.7)
    return LanguageInfo(code="en", confidence=0.5)


def resolve_language(query_text: str, override: Optional[str] = None) -> LanguageInfo:
    """Explicit override (e.g. from request options) or detected language."""
    if override:
        return LanguageInfo(code=override.lower(), confidence=1.0)
    return detect_language(query_text)


def language_instruction(language: LanguageInfo) -> str:
    """Prompt line telling the model which language to answer in."""
    if language.is_english:
        return "Respond in English."
    return (
        f"IMPORTANT: The user asked in {language.name}. "
        f"Respond in the SAME language ({language.name}), translating source material where needed."
    )
