"""
Language Detection

Per-question language detection using langdetect with a Unicode script fallback.
The detected language picks the locale for canned messages (apologies, caveats,
advice) and tells the LLM which language to answer in.
"""

import re
from dataclasses import dataclass
from typing import Optional

from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException

# Seed langdetect for deterministic results
DetectorFactory.seed = 0

# Locales that have canned message tables
SUPPORTED_LOCALES = ("en", "ko")

_SCRIPT_RANGES = [
    (0xAC00, 0xD7AF, "Hangul", "ko"),    # Hangul Syllables
    (0x1100, 0x11FF, "Hangul", "ko"),    # Hangul Jamo
    (0x3130, 0x318F, "Hangul", "ko"),    # Hangul Compatibility Jamo
    (0x3040, 0x309F, "Kana", "ja"),      # Hiragana
    (0x30A0, 0x30FF, "Kana", "ja"),      # Katakana
    (0x4E00, 0x9FFF, "CJK", "zh"),       # CJK Unified Ideographs
    (0x3400, 0x4DBF, "CJK", "zh"),       # CJK Extension A
]

# Matches any Hangul, Kana, or CJK character
_NON_LATIN_RE = re.compile(
    "[" + "".join(f"{chr(start)}-{chr(end)}" for start, end, _, _ in _SCRIPT_RANGES) + "]"
)


@dataclass(frozen=True)
class LanguageInfo:
    """Detected language of a question"""
    code: str           # ISO 639-1: "en", "ko", "ja"
    confidence: float   # 0.0~1.0
    script: str         # "Latin", "Hangul", "CJK", "Kana", "Mixed"

    @property
    def is_english(self) -> bool:
        return self.code == "en"

    @property
    def locale(self) -> str:
        """Message-table locale; languages without a table read English."""
        return self.code if self.code in SUPPORTED_LOCALES else "en"


def _detect_script(text: str) -> tuple[str, Optional[str]]:
    """Detect dominant script from Unicode character ranges.

    Returns:
        (script_name, language_code) or ("Latin", None) for ASCII-dominant text
    """
    script_counts: dict[str, int] = {}
    total = 0

    for ch in text:
        if ch.isspace() or ch in '.,!?;:"\'-()[]{}':
            continue
        total += 1
        cp = ord(ch)
        for start, end, script, _ in _SCRIPT_RANGES:
            if start <= cp <= end:
                script_counts[script] = script_counts.get(script, 0) + 1
                break
        else:
            script_counts["Latin"] = script_counts.get("Latin", 0) + 1

    if total == 0:
        return "Latin", None

    non_latin = {k: v for k, v in script_counts.items() if k != "Latin"}
    if not non_latin:
        return "Latin", None

    # Japanese mixes Kanji with Kana
    if "Kana" in non_latin:
        return "Kana", "ja"

    dominant = max(non_latin, key=non_latin.get)
    if non_latin[dominant] <= total * 0.15:
        return "Latin", None

    if len(non_latin) > 1:
        ranked = sorted(non_latin.values(), reverse=True)
        if ranked[1] > total * 0.2:
            return "Mixed", None

    lang = {"Hangul": "ko", "CJK": "zh"}[dominant]
    return dominant, lang


def detect_language(text: str) -> LanguageInfo:
    """Detect language of a question.

    Short questions ("내일 날씨") are decided by script alone; longer ones go
    through langdetect, validated against the script so that Latin-only text
    is never reported as a CJK language and vice versa.
    """
    if not text or not text.strip():
        return LanguageInfo(code="en", confidence=1.0, script="Latin")

    cleaned = text.strip()
    script, script_lang = _detect_script(cleaned)

    if len(cleaned) < 10:
        if script_lang:
            return LanguageInfo(code=script_lang, confidence=0.6, script=script)
        return LanguageInfo(code="en", confidence=0.5, script="Latin")

    try:
        results = detect_langs(cleaned)
    except LangDetectException:
        results = []

    if results:
        top = results[0]
        # langdetect often calls short English text fr/af/nl
        if top.lang != "en" and not _NON_LATIN_RE.search(cleaned):
            return LanguageInfo(code="en", confidence=0.5, script="Latin")
        return LanguageInfo(code=top.lang, confidence=round(top.prob, 4), script=script)

    if script_lang:
        return LanguageInfo(code=script_lang, confidence=0.7, script=script)

    return LanguageInfo(code="en", confidence=0.5, script="Latin")
