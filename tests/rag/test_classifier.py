"""Tests for query-type classification and category prioritization."""

from loguru import logger

from coach_rag.rag.query.categories import (
    DEFAULT_CATEGORY_VOCABULARY,
    derive_priority_categories,
    resolve_categories,
)
from coach_rag.rag.query.classifier import classify_query, looks_like_workout
from coach_rag.rag.query.entities import extract_entities
from coach_rag.rag.types import QueryType


def _classify(text: str) -> tuple[QueryType, bool]:
    return classify_query(text, extract_entities(text))


class TestClassifyQuery:
    """Tests for classify_query priority order."""

    def test_program_generation(self):
        assert _classify("create a 4 day workout program") == (QueryType.PROGRAM_GENERATION, False)

    def test_program_review_beats_generation(self):
        """Test that a review request wins over program keywords."""
        query_type, _ = _classify("Can you review my program? It is a 4 day workout program")
        assert query_type == QueryType.PROGRAM_REVIEW

    def test_pasted_workout_is_review(self):
        query_type, _ = _classify("Day 1: squat 3x5, bench 3x8, row 4 sets of 10 reps")
        assert query_type == QueryType.PROGRAM_REVIEW

    def test_muscle_focused(self):
        assert _classify("how to grow my back") == (QueryType.MUSCLE_FOCUSED, False)

    def test_myth_check_alone(self):
        assert _classify("is it true that muscle confusion works?") == (QueryType.MYTH_CHECK, True)

    def test_myth_check_is_additive(self):
        """Test that a myth question about a muscle stays MuscleFocused with the flag set."""
        assert _classify("does spot reduction really work for abs") == (QueryType.MUSCLE_FOCUSED, True)

    def test_general(self):
        assert _classify("what should I eat after training") == (QueryType.GENERAL, False)


class TestLooksLikeWorkout:
    """Tests for pasted-workout detection."""

    def test_detects_workout(self):
        assert looks_like_workout("squat 3x5, bench 3x8, rows 3x10")

    def test_plain_question(self):
        assert not looks_like_workout("how many sets should I do for squats")


class TestPriorityCategories:
    """Tests for derive_priority_categories and resolve_categories."""

    def test_muscle_focused_categories(self):
        categories = derive_priority_categories(
            QueryType.MUSCLE_FOCUSED, frozenset({"back"}), False, "how to grow my back"
        )
        assert categories == ["muscle:back", "exercise-technique", "training-principles", "myths"]

    def test_program_generation_first(self):
        categories = derive_priority_categories(QueryType.PROGRAM_GENERATION, frozenset(), False)
        assert categories[0] == "program-design"

    def test_myths_always_last(self):
        for query_type in QueryType:
            assert derive_priority_categories(query_type, frozenset(), False)[-1] == "myths"

    def test_movement_pattern_fallbacks(self):
        categories = derive_priority_categories(QueryType.GENERAL, frozenset(), False, "best pressing movements")
        resolved = resolve_categories(categories)
        assert resolved[:3] == ("muscle:chest", "muscle:shoulders", "muscle:triceps")

    def test_fallback_table(self):
        vocabulary = frozenset({"muscle:elbow-flexors", "muscle:triceps"})
        assert resolve_categories(["muscle:arms"], vocabulary) == ("muscle:elbow-flexors", "muscle:triceps")

    def test_unknown_category_is_dropped_and_logged(self):
        """Test that an unknown category never raises."""
        messages = []
        handler_id = logger.add(messages.append, level="WARNING")
        try:
            resolved = resolve_categories(["unknown-tag", "program-design"], frozenset({"program-design"}))
        finally:
            logger.remove(handler_id)

        assert resolved == ("program-design",)
        assert any("unknown-tag" in str(message) for message in messages)

    def test_default_vocabulary(self):
        assert "muscle:back" in DEFAULT_CATEGORY_VOCABULARY
        assert resolve_categories(["muscle:back", "muscle:back"]) == ("muscle:back",)
