"""
Language Detection

Detects the language of a user question so the synthesizer can answer in
kind. Uses langdetect, with a Unicode script check for short or
CJK-heavy inputs where langdetect is unreliable.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException

logger = logging.getLogger("sift.common.language")

# Seed langdetect for deterministic results
DetectorFactory.seed = 0

LANGUAGE_NAMES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
    "it": "Italian",
    "nl": "Dutch",
    "ko": "Korean",
    "ja": "Japanese",
    "zh-cn": "Chinese",
    "zh-tw": "Chinese",
    "zh": "Chinese",
}

# Latin-script questions shorter than this are assumed English;
# langdetect misclassifies short English text as af/nl/so.
MIN_LATIN_DETECT_CHARS = 40


@dataclass(frozen=True)
class LanguageInfo:
    """Detected language information"""
    code: str           # ISO 639-1: "en", "ko", "ja"
    confidence: float   # 0.0~1.0
    script: str         # "Latin", "Hangul", "CJK", "Kana"

    @property
    def is_english(self) -> bool:
        return self.code == "en"

    @property
    def name(self) -> str:
        return LANGUAGE_NAMES.get(self.code, self.code)


_SCRIPT_RANGES = [
    (0xAC00, 0xD7AF, "Hangul", "ko"),
    (0x1100, 0x11FF, "Hangul", "ko"),
    (0x3130, 0x318F, "Hangul", "ko"),
    (0x3040, 0x309F, "Kana", "ja"),
    (0x30A0, 0x30FF, "Kana", "ja"),
    (0x4E00, 0x9FFF, "CJK", "zh"),
    (0x3400, 0x4DBF, "CJK", "zh"),
]


def _detect_script(text: str) -> tuple[str, Optional[str]]:
    """Return the dominant non-Latin (script, language), or ("Latin", None)."""
    counts: dict[str, int] = {}
    langs: dict[str, str] = {}
    total = 0
    for ch in text:
        if ch.isspace() or not ch.isalpha():
            continue
        total += 1
        cp = ord(ch)
        for start, end, script, lang in _SCRIPT_RANGES:
            if start <= cp <= end:
                counts[script] = counts.get(script, 0) + 1
                langs[script] = lang
                break

    if not total or not counts:
        return "Latin", None

    # Japanese mixes Kanji with Kana
    if "Kana" in counts:
        return "Kana", "ja"

    script = max(counts, key=counts.get)
    if counts[script] > total * 0.15:
        return script, langs[script]
    return "Latin", None


def detect_language(text: str) -> LanguageInfo:
    """Detect language of input text.

    Args:
        text: Input text to detect language for

    Returns:
        LanguageInfo with detected language code, confidence, and script
    """
    if not text or not text.strip():
        return LanguageInfo(code="en", confidence=1.0, script="Latin")

    cleaned = text.strip()
    script, script_lang = _detect_script(cleaned)

    if script_lang:
        return LanguageInfo(code=script_lang, confidence=0.8, script=script)

    if len(cleaned) < MIN_LATIN_DETECT_CHARS:
        return LanguageInfo(code="en", confidence=0.5, script="Latin")

    try:
        results = detect_langs(cleaned)
    except LangDetectException as e:
        logger.debug("langdetect failed: %s", e)
        return LanguageInfo(code="en", confidence=0.5, script="Latin")

    top = results[0]
    return LanguageInfo(code=top.lang, confidence=round(top.prob, 4), script="Latin")
