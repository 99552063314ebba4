"""Tests for QueryAnalyzer.

Collaborators (translation, decomposition, contextualization) are mocked;
these tests verify the analyzer contract, not the language model.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from coach_rag.rag.cache import BoundedCache
from coach_rag.rag.errors import CollaboratorFailure, InputValidationError
from coach_rag.rag.query.analyzer import QueryAnalyzer
from coach_rag.rag.types import Language, QueryType

ARABIC_QUERY = "كيف أبني عضلات الظهر"
FRENCH_QUERY = "Comment construire mes pectoraux avec des exercices ?"


def _translator(return_value: str = "how to build back muscle"):
    translator = MagicMock()
    translator.translate = AsyncMock(return_value=return_value)
    return translator


class _SlowCollaborator:
    async def translate(self, text, source_language):
        await asyncio.sleep(1)
        return "too late"

    async def decompose(self, query):
        await asyncio.sleep(1)
        return ["too late"]


class TestValidation:
    """Tests for input validation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["", "   ", "\n\t"])
    async def test_empty_query_rejected(self, raw):
        translator = _translator()
        analyzer = QueryAnalyzer(translator=translator)

        with pytest.raises(InputValidationError):
            await analyzer.analyze(raw)
        translator.translate.assert_not_called()

    def test_input_validation_error_is_value_error(self):
        assert issubclass(InputValidationError, ValueError)


class TestTranslation:
    """Tests for language handling and translation fallback."""

    @pytest.mark.asyncio
    async def test_english_is_not_translated(self):
        translator = _translator()
        analyzer = QueryAnalyzer(translator=translator)

        query = await analyzer.analyze("how to grow my back")

        assert query.detected_language == Language.ENGLISH
        assert query.normalized_text == query.raw_text
        translator.translate.assert_not_called()

    @pytest.mark.asyncio
    async def test_arabic_is_translated(self):
        analyzer = QueryAnalyzer(translator=_translator("how to build back muscle"))

        query = await analyzer.analyze(ARABIC_QUERY)

        assert query.detected_language == Language.ARABIC
        assert query.normalized_text == "how to build back muscle"
        assert query.normalized_text != query.raw_text
        assert query.query_type == QueryType.MUSCLE_FOCUSED
        assert "back" in query.mentioned_entities

    @pytest.mark.asyncio
    async def test_translation_failure_falls_back_to_raw(self):
        translator = MagicMock()
        translator.translate = AsyncMock(side_effect=CollaboratorFailure("translation", "boom"))
        analyzer = QueryAnalyzer(translator=translator)
        failures: list[str] = []

        query = await analyzer.analyze(FRENCH_QUERY, failures=failures)

        assert query.detected_language == Language.FRENCH
        assert query.normalized_text == FRENCH_QUERY
        assert failures == ["translation"]

    @pytest.mark.asyncio
    async def test_unexpected_translator_error_falls_back_to_raw(self):
        translator = MagicMock()
        translator.translate = AsyncMock(side_effect=ConnectionError("connection reset"))
        analyzer = QueryAnalyzer(translator=translator)
        failures: list[str] = []

        query = await analyzer.analyze(FRENCH_QUERY, failures=failures)

        assert query.normalized_text == FRENCH_QUERY
        assert failures == ["translation"]

    @pytest.mark.asyncio
    async def test_translation_timeout_falls_back_to_raw(self):
        analyzer = QueryAnalyzer(translator=_SlowCollaborator(), translation_timeout=0.01)
        failures: list[str] = []

        query = await analyzer.analyze(ARABIC_QUERY, failures=failures)

        assert query.normalized_text == ARABIC_QUERY
        assert failures == ["translation"]

    @pytest.mark.asyncio
    async def test_translations_are_cached(self):
        translator = _translator("how to build my chest with exercises")
        cache: BoundedCache[str, str] = BoundedCache(10)
        analyzer = QueryAnalyzer(translator=translator, translation_cache=cache)

        await analyzer.analyze(FRENCH_QUERY)
        await analyzer.analyze(FRENCH_QUERY)

        translator.translate.assert_awaited_once()
        assert FRENCH_QUERY in cache


class TestDecomposition:
    """Tests for sub-query generation inside the analyzer."""

    @pytest.mark.asyncio
    async def test_original_query_first(self):
        generator = MagicMock()
        generator.decompose = AsyncMock(
            return_value=["what are the best back exercises", "how often should I train back"]
        )
        analyzer = QueryAnalyzer(sub_query_generator=generator)

        query = await analyzer.analyze("how to grow my back")

        assert query.sub_queries[0] == "how to grow my back"
        assert 1 < len(query.sub_queries) <= 5
        assert query.search_text(0) == query.semantically_expanded_text
        assert query.search_text(1) == query.sub_queries[1]

    @pytest.mark.asyncio
    async def test_generator_failure_keeps_original_only(self):
        generator = MagicMock()
        generator.decompose = AsyncMock(side_effect=CollaboratorFailure("decomposition", "bad json"))
        analyzer = QueryAnalyzer(sub_query_generator=generator)

        query = await analyzer.analyze("how to grow my back")

        assert query.sub_queries == ("how to grow my back",)

    @pytest.mark.asyncio
    async def test_unexpected_generator_error_keeps_original_only(self):
        generator = MagicMock()
        generator.decompose = AsyncMock(side_effect=KeyError("sub_queries"))
        analyzer = QueryAnalyzer(sub_query_generator=generator)

        query = await analyzer.analyze("how to grow my back")

        assert query.sub_queries == ("how to grow my back",)

    @pytest.mark.asyncio
    async def test_generator_timeout_keeps_original_only(self):
        analyzer = QueryAnalyzer(sub_query_generator=_SlowCollaborator(), decomposition_timeout=0.01)

        query = await analyzer.analyze("how to grow my back")

        assert query.sub_queries == ("how to grow my back",)

    @pytest.mark.asyncio
    async def test_specific_question_not_decomposed(self):
        generator = MagicMock()
        generator.decompose = AsyncMock(return_value=["unused"])
        analyzer = QueryAnalyzer(sub_query_generator=generator)

        await analyzer.analyze("define progressive overload")

        generator.decompose.assert_not_called()


class TestContextualization:
    """Tests for history-aware rewriting."""

    @pytest.mark.asyncio
    async def test_follow_up_is_rewritten(self):
        contextualizer = MagicMock()
        contextualizer.contextualize = AsyncMock(return_value="how many sets of rows for back growth")
        analyzer = QueryAnalyzer(contextualizer=contextualizer)

        query = await analyzer.analyze("how many sets of those", history_hint="user: how to grow my back")

        assert query.contextualized_text == "how many sets of rows for back growth"
        assert query.normalized_text == "how many sets of those"
        assert "back" in query.mentioned_entities
        contextualizer.contextualize.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_history_no_rewrite(self):
        contextualizer = MagicMock()
        contextualizer.contextualize = AsyncMock(return_value="unused")
        analyzer = QueryAnalyzer(contextualizer=contextualizer)

        query = await analyzer.analyze("what about those")

        assert query.contextualized_text == ""
        contextualizer.contextualize.assert_not_called()


class TestOfflineAnalysis:
    """Tests for analyze_offline."""

    def test_offline_makes_no_calls(self):
        translator = _translator()
        analyzer = QueryAnalyzer(translator=translator)

        query = analyzer.analyze_offline(ARABIC_QUERY)

        assert query.detected_language == Language.ARABIC
        assert query.normalized_text == ARABIC_QUERY
        assert query.sub_queries == (ARABIC_QUERY,)
        translator.translate.assert_not_called()

    def test_priority_categories_resolved_against_vocabulary(self):
        analyzer = QueryAnalyzer(category_vocabulary=frozenset({"program-design", "general-nutrition"}))

        query = analyzer.analyze_offline("create a 4 day workout program")

        assert query.query_type == QueryType.PROGRAM_GENERATION
        assert query.priority_categories == ("program-design",)
