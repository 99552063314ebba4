"""Heuristic language detection for incoming questions.

Arabic is recognised by script ratio, French by function words, and
anything else is treated as English. Short queries may be misclassified
as English, which only means they are searched untranslated.
"""

import re

from coach_rag.rag.types import Language

ARABIC_RATIO_THRESHOLD = 0.3
FRENCH_MIN_MATCHES = 2

_ARABIC_CHARS = re.compile(r"[\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFF]")
_WORDS = re.compile(r"[a-zàâäçéèêëîïôöûùüÿœæ'’-]+")

FRENCH_INDICATORS = frozenset(
    {
        "quel",
        "quelle",
        "quels",
        "comment",
        "pourquoi",
        "où",
        "quand",
        "qui",
        "que",
        "est-ce",
        "c'est",
        "je",
        "tu",
        "il",
        "elle",
        "nous",
        "vous",
        "ils",
        "elles",
        "le",
        "la",
        "les",
        "un",
        "une",
        "des",
        "du",
        "de",
        "à",
        "au",
        "aux",
        "mon",
        "mes",
        "pour",
        "avec",
        "entraînement",
        "exercice",
        "exercices",
        "musculation",
        "poids",
        "répétitions",
        "séance",
    }
)


def arabic_ratio(text: str) -> float:
    """Share of non-whitespace characters that are Arabic script."""
    total = len(re.sub(r"\s", "", text))
    if total == 0:
        return 0.0
    return len(_ARABIC_CHARS.findall(text)) / total


def french_indicator_count(text: str) -> int:
    words = {w.replace("’", "'") for w in _WORDS.findall(text.lower())}
    return len(words & FRENCH_INDICATORS)


def detect_language(text: str) -> Language:
    if arabic_ratio(text) > ARABIC_RATIO_THRESHOLD:
        return Language.ARABIC
    if french_indicator_count(text) >= FRENCH_MIN_MATCHES:
        return Language.FRENCH
    return Language.ENGLISH
