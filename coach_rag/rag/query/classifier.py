"""Pattern-based query-type classification.

Only one type drives category prioritization. Priority order is
ProgramReview > ProgramGeneration > MuscleFocused > General. Myth
checking is additive: it is reported as a separate flag and only becomes
the query type when nothing else applies.
"""

import re

from coach_rag.rag.query.entities import muscle_groups
from coach_rag.rag.types import QueryType

PROGRAM_REVIEW_KEYWORDS = (
    "review my program",
    "review my workout",
    "review my routine",
    "check my program",
    "check my workout",
    "check my routine",
    "evaluate my program",
    "evaluate my workout",
    "analyze my program",
    "analyze my workout",
    "feedback on my program",
    "feedback on my workout",
    "feedback on my routine",
    "rate my program",
    "rate my workout",
    "rate my routine",
    "critique my program",
    "critique my workout",
    "what do you think of my program",
    "what do you think of my workout",
)

PROGRAM_REVIEW_PATTERNS = (
    re.compile(r"here.*is.*my.*(program|routine|workout|split)"),
    re.compile(r"my.*current.*(program|routine|split)"),
    re.compile(r"is.*this.*(program|routine|split).*good"),
    re.compile(r"(improve|fix).*my.*(program|routine|split)"),
)

PROGRAM_GENERATION_KEYWORDS = (
    "create a program",
    "create a workout",
    "create a routine",
    "make me a program",
    "make me a workout",
    "design a program",
    "build a program",
    "build me a program",
    "write me a program",
    "workout program",
    "training program",
    "workout plan",
    "training plan",
    "workout split",
    "training split",
    "routine",
)

PROGRAM_GENERATION_PATTERNS = (
    re.compile(r"create.*\d.*day.*(workout|program|routine|split)"),
    re.compile(r"\d.*day.*(workout|training).*(program|plan|split)"),
    re.compile(r"program.*\d.*day"),
    re.compile(r"(workout|split).*\d.*days?"),
    re.compile(r"\d+\s*(x|times)\s*(a|per)\s*week.*(program|plan|split|routine)"),
    re.compile(r"(full|upper|lower).*body.*(program|plan|split)"),
    re.compile(r"push.*pull.*legs?"),
)

MYTH_PATTERNS = (
    re.compile(r"\bmyths?\b"),
    re.compile(r"\bis it true\b"),
    re.compile(r"\bdoes .+ really\b"),
    re.compile(r"\bdo .+ really\b"),
    re.compile(r"\bmisconceptions?\b"),
    re.compile(r"\bbro ?science\b"),
    re.compile(r"\bspot reduc"),
    re.compile(r"\bmuscle confusion\b"),
    re.compile(r"\btoning\b"),
    re.compile(r"\b(true|false) that\b"),
)


def is_program_review(text: str) -> bool:
    lowered = text.lower()
    if any(keyword in lowered for keyword in PROGRAM_REVIEW_KEYWORDS):
        return True
    if any(pattern.search(lowered) for pattern in PROGRAM_REVIEW_PATTERNS):
        return True
    return looks_like_workout(text)


def is_program_generation(text: str) -> bool:
    lowered = text.lower()
    if any(keyword in lowered for keyword in PROGRAM_GENERATION_KEYWORDS):
        return True
    return any(pattern.search(lowered) for pattern in PROGRAM_GENERATION_PATTERNS)


def is_myth_check(text: str) -> bool:
    lowered = text.lower()
    return any(pattern.search(lowered) for pattern in MYTH_PATTERNS)


_SET_REP_PATTERNS = (
    re.compile(r"\d+\s*x\s*\d+"),
    re.compile(r"\d+\s*sets?"),
    re.compile(r"\d+\s*reps?"),
    re.compile(r"\d+\s*-\s*\d+\s*reps?"),
)
_COMMON_EXERCISES = ("squat", "bench", "deadlift", "press", "row", "curl", "pulldown", "pull-up", "lunge", "dip")


def looks_like_workout(text: str) -> bool:
    """Detect a pasted workout: at least three set/rep notations and two exercises."""
    lowered = text.lower()
    set_rep_count = sum(len(pattern.findall(lowered)) for pattern in _SET_REP_PATTERNS)
    exercise_count = sum(1 for exercise in _COMMON_EXERCISES if exercise in lowered)
    return set_rep_count >= 3 and exercise_count >= 2


def classify_query(text: str, entities: frozenset[str]) -> tuple[QueryType, bool]:
    """Classify a normalized query.

    Args:
        text: Normalized (English) query text
        entities: Entities already extracted from the text

    Returns:
        Tuple of (query type, myth check flag)
    """
    myth_check = is_myth_check(text)

    if is_program_review(text):
        return QueryType.PROGRAM_REVIEW, myth_check
    if is_program_generation(text):
        return QueryType.PROGRAM_GENERATION, myth_check
    if muscle_groups(entities):
        return QueryType.MUSCLE_FOCUSED, myth_check
    if myth_check:
        return QueryType.MYTH_CHECK, True
    return QueryType.GENERAL, False
