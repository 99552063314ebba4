"""Category prioritization and the versioned category fallback table.

Query classification speaks in coarse names ("muscle:arms",
"pushing-movements") that the corpus may not use as tags. Names are
resolved against the corpus tag vocabulary through ``CATEGORY_FALLBACKS``;
anything that still does not resolve is logged and skipped.
"""

import re
from collections.abc import Iterable

from loguru import logger

from coach_rag.rag.query.entities import muscle_groups
from coach_rag.rag.types import QueryType

CATEGORY_MAPPING_VERSION = "2"

PROGRAM_DESIGN = "program-design"
TRAINING_PRINCIPLES = "training-principles"
EXERCISE_TECHNIQUE = "exercise-technique"
MYTHS = "myths"
NUTRITION = "general-nutrition"
PUSHING_MOVEMENTS = "pushing-movements"
PULLING_MOVEMENTS = "pulling-movements"

MUSCLE_CATEGORY_PREFIX = "muscle:"

DEFAULT_CATEGORY_VOCABULARY = frozenset(
    {
        PROGRAM_DESIGN,
        TRAINING_PRINCIPLES,
        EXERCISE_TECHNIQUE,
        MYTHS,
        NUTRITION,
        "muscle:chest",
        "muscle:back",
        "muscle:shoulders",
        "muscle:elbow-flexors",
        "muscle:triceps",
        "muscle:forearms",
        "muscle:quadriceps",
        "muscle:hamstrings",
        "muscle:glutes",
        "muscle:calves",
        "muscle:core",
    }
)

CATEGORY_FALLBACKS: dict[str, tuple[str, ...]] = {
    "muscle:arms": ("muscle:elbow-flexors", "muscle:triceps"),
    "muscle:biceps": ("muscle:elbow-flexors",),
    "muscle:legs": ("muscle:quadriceps", "muscle:hamstrings", "muscle:glutes", "muscle:calves"),
    "muscle:abs": ("muscle:core",),
    PUSHING_MOVEMENTS: ("muscle:chest", "muscle:shoulders", "muscle:triceps"),
    PULLING_MOVEMENTS: ("muscle:back", "muscle:elbow-flexors"),
    "program-review": (PROGRAM_DESIGN,),
    "hypertrophy": (TRAINING_PRINCIPLES,),
    "rest-periods": (TRAINING_PRINCIPLES,),
}

_PUSH_TEXT = re.compile(r"\b(push|pushing|press|pressing)\b")
_PULL_TEXT = re.compile(r"\b(pull|pulling|rows?|rowing)\b")


def muscle_category(muscle: str) -> str:
    return f"{MUSCLE_CATEGORY_PREFIX}{muscle}"


def derive_priority_categories(
    query_type: QueryType,
    entities: frozenset[str],
    myth_check: bool,
    text: str = "",
) -> list[str]:
    """Priority categories for a classified query, before vocabulary resolution.

    Myth content is always appended last so misconceptions get checked.
    """
    categories: list[str] = []
    match query_type:
        case QueryType.PROGRAM_REVIEW:
            categories += ["program-review", PROGRAM_DESIGN, TRAINING_PRINCIPLES, EXERCISE_TECHNIQUE]
        case QueryType.PROGRAM_GENERATION:
            categories += [PROGRAM_DESIGN, TRAINING_PRINCIPLES]
        case QueryType.MUSCLE_FOCUSED:
            categories += [muscle_category(m) for m in muscle_groups(entities)]
            categories += [EXERCISE_TECHNIQUE, TRAINING_PRINCIPLES]
        case QueryType.MYTH_CHECK | QueryType.GENERAL:
            pass

    lowered = text.lower()
    if _PUSH_TEXT.search(lowered):
        categories.append(PUSHING_MOVEMENTS)
    if _PULL_TEXT.search(lowered):
        categories.append(PULLING_MOVEMENTS)

    # Checked for every query type, not only MythCheck.
    categories.append(MYTHS)
    return categories


def resolve_categories(names: Iterable[str], vocabulary: frozenset[str] | None = None) -> tuple[str, ...]:
    """Map category names onto the corpus tag vocabulary.

    Args:
        names: Category names in priority order
        vocabulary: Tags present in the corpus (defaults to the built-in set)

    Returns:
        Ordered, deduplicated tags that exist in the vocabulary
    """
    known = DEFAULT_CATEGORY_VOCABULARY if vocabulary is None else vocabulary
    resolved: list[str] = []

    def add(tag: str) -> None:
        if tag not in resolved:
            resolved.append(tag)

    for name in names:
        if name in known:
            add(name)
            continue
        fallbacks = [tag for tag in CATEGORY_FALLBACKS.get(name, ()) if tag in known]
        if fallbacks:
            for tag in fallbacks:
                add(tag)
            continue
        logger.warning(
            f"Unknown category '{name}' skipped",
            strategy="category_prioritization",
            mapping_version=CATEGORY_MAPPING_VERSION,
        )

    return tuple(resolved)
