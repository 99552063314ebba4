"""Semantic term mapping from user phrasing to corpus vocabulary.

Users say "upper body" or "push day"; the knowledge base talks about
pectorals, deltoids and pressing movements. Matched colloquial terms get
their canonical terms appended to the query text.
"""

import re
from functools import lru_cache

SEMANTIC_MAP: dict[str, tuple[str, ...]] = {
    # Body regions
    "lower body": ("quadriceps", "hamstrings", "glutes", "calves", "leg training", "squats", "deadlifts"),
    "upper body": ("chest", "back", "shoulders", "biceps", "triceps", "arm training", "pectorals"),
    "legs": ("quadriceps", "hamstrings", "glutes", "calves", "leg training", "squats"),
    # Muscle groups
    "arms": ("biceps", "triceps", "brachialis", "forearms", "arm training", "curls"),
    "chest": ("pectorals", "pecs", "incline press", "chest fly", "bench press"),
    "back": ("latissimus dorsi", "lats", "rhomboids", "traps", "rows", "pulldowns"),
    "shoulders": ("deltoids", "delts", "shoulder press", "lateral raises", "rear delts"),
    "quads": ("quadriceps", "vastus lateralis", "vastus medialis", "rectus femoris", "leg extensions"),
    "hamstrings": ("biceps femoris", "semitendinosus", "semimembranosus", "leg curls", "romanian deadlifts"),
    "glutes": ("gluteus maximus", "gluteus medius", "hip thrusts", "glute bridges"),
    "calves": ("gastrocnemius", "soleus", "calf raises"),
    # Training splits
    "push day": ("chest", "shoulders", "triceps", "bench press", "shoulder press"),
    "pull day": ("back", "biceps", "rows", "pull-ups", "pulldowns", "curls"),
    "leg day": ("quadriceps", "hamstrings", "glutes", "calves", "squats", "leg press"),
    # Goals
    "muscle growth": ("hypertrophy", "rep ranges", "progressive overload", "time under tension"),
    "grow": ("hypertrophy", "progressive overload"),
    "strength": ("maximal strength", "low reps", "heavy weight", "compound movements"),
    "endurance": ("muscular endurance", "high reps", "circuit training"),
    # Exercise categories and equipment
    "isolation": ("bicep curls", "tricep extensions", "leg extensions", "leg curls", "lateral raises"),
    "dumbbells": ("dumbbell exercises", "unilateral training", "free weights"),
    "barbells": ("barbell exercises", "bilateral training", "heavy loading"),
    "machines": ("machine exercises", "controlled movement"),
    # Programming variables
    "frequency": ("training frequency", "sessions per week", "recovery time"),
    "volume": ("training volume", "sets and reps", "weekly volume"),
    "intensity": ("training intensity", "load", "effort level"),
}


@lru_cache(maxsize=256)
def phrase_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![\w-]){re.escape(phrase)}(?![\w-])")


def contains_phrase(text_lower: str, phrase: str) -> bool:
    return phrase_pattern(phrase).search(text_lower) is not None


def matched_terms(text: str, table: dict[str, tuple[str, ...]] = SEMANTIC_MAP) -> list[str]:
    lowered = text.lower()
    return [term for term in table if contains_phrase(lowered, term)]


def apply_semantic_mapping(text: str, table: dict[str, tuple[str, ...]] = SEMANTIC_MAP) -> str:
    """Append canonical vocabulary for every colloquial term found in ``text``.

    Canonical terms already present are not repeated, and expansion runs
    until nothing new is added, so the result is a fixed point: mapping it
    again returns it unchanged.
    """
    expanded = text
    while True:
        lowered = expanded.lower()
        additions: list[str] = []
        for term in matched_terms(expanded, table):
            for canonical in table[term]:
                if canonical not in additions and not contains_phrase(lowered, canonical):
                    additions.append(canonical)
        if not additions:
            return expanded
        expanded = f"{expanded} {' '.join(additions)}"
