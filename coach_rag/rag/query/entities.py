"""Curated domain entity dictionary and extraction.

Entities are canonical names (exercises, muscle groups, equipment,
training concepts), each recognised through a set of aliases that may be
compound terms like "romanian deadlift" or "time under tension".
"""

from dataclasses import dataclass
from typing import Literal

from coach_rag.rag.query.semantic_map import contains_phrase

EntityKind = Literal["exercise", "muscle", "equipment", "concept"]


@dataclass(frozen=True)
class EntityDefinition:
    name: str
    kind: EntityKind
    aliases: tuple[str, ...]


ENTITY_DEFINITIONS: tuple[EntityDefinition, ...] = (
    # Muscle groups
    EntityDefinition("chest", "muscle", ("chest", "pectorals", "pectoral", "pecs", "pectoralis major")),
    EntityDefinition(
        "back", "muscle", ("back", "lats", "latissimus dorsi", "rhomboids", "traps", "trapezius", "upper back")
    ),
    EntityDefinition("shoulders", "muscle", ("shoulders", "shoulder", "deltoids", "delts", "rear delts")),
    EntityDefinition("biceps", "muscle", ("biceps", "bicep", "brachialis", "elbow flexors")),
    EntityDefinition("triceps", "muscle", ("triceps", "tricep")),
    EntityDefinition("arms", "muscle", ("arms", "arm")),
    EntityDefinition("forearms", "muscle", ("forearms", "forearm", "grip")),
    EntityDefinition("legs", "muscle", ("legs", "leg", "lower body")),
    EntityDefinition("quadriceps", "muscle", ("quadriceps", "quads", "quad")),
    EntityDefinition("hamstrings", "muscle", ("hamstrings", "hamstring")),
    EntityDefinition("glutes", "muscle", ("glutes", "glute", "gluteus maximus")),
    EntityDefinition("calves", "muscle", ("calves", "calf")),
    EntityDefinition("core", "muscle", ("core", "abs", "abdominals", "obliques")),
    # Exercises
    EntityDefinition("squat", "exercise", ("squat", "squats", "back squat", "front squat")),
    EntityDefinition("deadlift", "exercise", ("deadlift", "deadlifts")),
    EntityDefinition("romanian deadlift", "exercise", ("romanian deadlift", "romanian deadlifts", "rdl")),
    EntityDefinition("bench press", "exercise", ("bench press", "bench")),
    EntityDefinition("overhead press", "exercise", ("overhead press", "shoulder press", "military press")),
    EntityDefinition("row", "exercise", ("row", "rows", "barbell row", "cable row")),
    EntityDefinition("pull-up", "exercise", ("pull-up", "pull-ups", "pullup", "pullups", "chin-up", "chin up")),
    EntityDefinition("lat pulldown", "exercise", ("lat pulldown", "pulldown", "pulldowns")),
    EntityDefinition("curl", "exercise", ("curl", "curls", "bicep curl", "bicep curls")),
    EntityDefinition("tricep extension", "exercise", ("tricep extension", "tricep extensions", "skull crusher")),
    EntityDefinition("lateral raise", "exercise", ("lateral raise", "lateral raises")),
    EntityDefinition("chest fly", "exercise", ("chest fly", "fly", "flyes")),
    EntityDefinition("hip thrust", "exercise", ("hip thrust", "hip thrusts")),
    EntityDefinition("lunge", "exercise", ("lunge", "lunges")),
    EntityDefinition("leg press", "exercise", ("leg press",)),
    EntityDefinition("dip", "exercise", ("dip", "dips")),
    EntityDefinition("push-up", "exercise", ("push-up", "push-ups", "pushup", "pushups")),
    EntityDefinition("plank", "exercise", ("plank", "planks")),
    # Equipment
    EntityDefinition("barbell", "equipment", ("barbell", "barbells")),
    EntityDefinition("dumbbell", "equipment", ("dumbbell", "dumbbells")),
    EntityDefinition("cable", "equipment", ("cable", "cables", "cable machine")),
    EntityDefinition("machine", "equipment", ("machine", "machines", "smith machine")),
    EntityDefinition("kettlebell", "equipment", ("kettlebell", "kettlebells")),
    EntityDefinition("resistance band", "equipment", ("resistance band", "resistance bands", "bands")),
    # Training concepts
    EntityDefinition("hypertrophy", "concept", ("hypertrophy", "muscle growth", "build muscle", "muscle building")),
    EntityDefinition("progressive overload", "concept", ("progressive overload", "progression")),
    EntityDefinition("training volume", "concept", ("training volume", "volume", "sets per week", "weekly sets")),
    EntityDefinition("training frequency", "concept", ("training frequency", "frequency", "times per week")),
    EntityDefinition("rep range", "concept", ("rep range", "rep ranges", "repetitions")),
    EntityDefinition("rest periods", "concept", ("rest periods", "rest period", "rest between sets")),
    EntityDefinition("time under tension", "concept", ("time under tension", "tempo")),
    EntityDefinition("deload", "concept", ("deload", "deloading")),
    EntityDefinition("periodization", "concept", ("periodization", "periodisation", "mesocycle")),
    EntityDefinition("proximity to failure", "concept", ("proximity to failure", "rir", "rpe", "to failure")),
    EntityDefinition("range of motion", "concept", ("range of motion", "full rom", "partial reps")),
)

_DEFINITIONS_BY_NAME = {definition.name: definition for definition in ENTITY_DEFINITIONS}


def extract_entities(text: str) -> frozenset[str]:
    """Return canonical names of all entities mentioned in ``text``."""
    lowered = text.lower()
    return frozenset(
        definition.name
        for definition in ENTITY_DEFINITIONS
        if any(contains_phrase(lowered, alias) for alias in definition.aliases)
    )


def entity_kind(name: str) -> EntityKind | None:
    definition = _DEFINITIONS_BY_NAME.get(name)
    return definition.kind if definition else None


def entity_aliases(name: str) -> tuple[str, ...]:
    definition = _DEFINITIONS_BY_NAME.get(name)
    return definition.aliases if definition else (name,)


def muscle_groups(entities: frozenset[str]) -> list[str]:
    """Muscle-group entities in dictionary order."""
    return [d.name for d in ENTITY_DEFINITIONS if d.kind == "muscle" and d.name in entities]
