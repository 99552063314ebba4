"""End-to-end tests for HybridRetrievalEngine over in-memory stores."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from coach_rag.rag.embed.embedder import UnavailableEmbeddingClient
from coach_rag.rag.engine import build_engine, build_engine_from_corpus
from coach_rag.rag.errors import InputValidationError, StoreUnavailable
from coach_rag.rag.retrieve.fusion import MANDATORY_LOOKUP_TERMS
from coach_rag.rag.types import DocumentStatus, Language, QueryType, RetrievalConfig


class _FailingTextStore:
    async def search(self, term_query, limit):
        raise StoreUnavailable("keyword", "database down")


class _SlowTextStore:
    async def search(self, term_query, limit):
        await asyncio.sleep(5)
        return []


class _SlowTranslator:
    async def translate(self, text, source_language):
        await asyncio.sleep(5)
        return "too late"


class _BrokenGraphStore:
    async def related_entities(self, entity_name, limit):
        raise ConnectionResetError("socket closed")


class _SlowMarkerTextStore:
    """Answers normal searches at once but stalls on the mandatory-content markers."""

    def __init__(self, inner):
        self.inner = inner

    async def search(self, term_query, limit):
        if term_query.terms == MANDATORY_LOOKUP_TERMS:
            await asyncio.sleep(3)
        return await self.inner.search(term_query, limit)


def _assert_invariants(result, config: RetrievalConfig):
    refs = [r.chunk_ref for r in result.results]
    assert len(refs) == len(set(refs))
    assert len(result.results) <= config.max_chunks
    for r in result.results:
        if not r.is_mandatory:
            assert r.fused_score >= config.similarity_threshold or r.fused_score >= config.score_floor


class TestScenarios:
    """Retrieval scenarios over a small strength-training corpus."""

    @pytest.mark.asyncio
    async def test_back_guide_in_top_five(self, fitness_corpus, embedder):
        engine = build_engine_from_corpus(fitness_corpus, embedder)
        config = RetrievalConfig(max_chunks=5)

        result = await engine.retrieve("how to grow my back", config)

        assert result.query.query_type == QueryType.MUSCLE_FOCUSED
        assert "Back Training Guide" in [r.document_title for r in result.results[:5]]
        assert result.context.citations[0].title == "Back Training Guide"
        _assert_invariants(result, config)

    @pytest.mark.asyncio
    async def test_strict_category_priority(self, program_corpus, embedder):
        engine = build_engine_from_corpus(program_corpus, embedder)
        config = RetrievalConfig(max_chunks=5, strict_category_priority=True)

        result = await engine.retrieve("create a 4 day workout program", config)

        assert result.query.query_type == QueryType.PROGRAM_GENERATION
        assert result.results
        program = [r for r in result.results if "program-design" in r.categories]
        assert len(program) / len(result.results) >= 0.7
        _assert_invariants(result, config)

    @pytest.mark.asyncio
    async def test_arabic_query_is_translated(self, fitness_corpus, embedder):
        translator = MagicMock()
        translator.translate = AsyncMock(return_value="how to build back muscle")
        engine = build_engine_from_corpus(fitness_corpus, embedder, translator=translator)

        result = await engine.retrieve("كيف أبني عضلات الظهر", RetrievalConfig(max_chunks=5))

        assert result.query.detected_language == Language.ARABIC
        assert result.query.normalized_text != result.query.raw_text
        assert "Back Training Guide" in [c.title for c in result.context.citations]

    @pytest.mark.asyncio
    async def test_pending_corpus_returns_empty(self, corpus_factory, fitness_documents, embedder):
        for document in fitness_documents:
            document["status"] = DocumentStatus.PENDING
        engine = build_engine_from_corpus(corpus_factory(fitness_documents), embedder)

        result = await engine.retrieve("how to grow my back", RetrievalConfig(max_chunks=5))

        assert result.is_empty
        assert result.context.context_text == ""
        assert result.confidence.level == "low"

    @pytest.mark.asyncio
    async def test_english_query_untouched(self, fitness_corpus, embedder):
        engine = build_engine_from_corpus(fitness_corpus, embedder)

        result = await engine.retrieve("best chest exercises", RetrievalConfig(max_chunks=3))

        assert result.query.normalized_text == "best chest exercises"
        assert result.failed_strategies == []
        _assert_invariants(result, RetrievalConfig(max_chunks=3))


class TestFailureHandling:
    """Tests for validation, degradation and the overall deadline."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["", "   "])
    async def test_empty_query_makes_no_calls(self, fitness_corpus, embedder, raw):
        engine = build_engine_from_corpus(fitness_corpus, embedder)

        with pytest.raises(InputValidationError):
            await engine.retrieve(raw)
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_vector_failure_degrades_to_keyword(self, fitness_corpus):
        engine = build_engine_from_corpus(fitness_corpus, UnavailableEmbeddingClient())

        result = await engine.retrieve("how to grow my back", RetrievalConfig(max_chunks=5))

        assert "vector" in result.failed_strategies
        assert "Back Training Guide" in [r.document_title for r in result.results]

    @pytest.mark.asyncio
    async def test_all_strategies_failed_returns_empty(self, vector_store):
        engine = build_engine(
            embedder=UnavailableEmbeddingClient(), vector_store=vector_store, text_store=_FailingTextStore()
        )

        result = await engine.retrieve("how to grow my back", RetrievalConfig(max_chunks=5))

        assert result.is_empty
        assert set(result.failed_strategies) == {"vector", "keyword"}

    @pytest.mark.asyncio
    async def test_deadline_returns_partial_results(self, embedder, vector_store):
        engine = build_engine(embedder=embedder, vector_store=vector_store, text_store=_SlowTextStore())
        started = time.monotonic()

        result = await engine.retrieve("how to grow my back", RetrievalConfig(max_chunks=5, deadline_seconds=0.5))

        assert time.monotonic() - started < 2
        assert result.deadline_exceeded is True
        assert "keyword" in result.failed_strategies

    @pytest.mark.asyncio
    async def test_unexpected_graph_error_keeps_other_strategies(self, embedder, vector_store, text_store):
        engine = build_engine(
            embedder=embedder, vector_store=vector_store, text_store=text_store, graph_store=_BrokenGraphStore()
        )

        result = await engine.retrieve("how to grow my back", RetrievalConfig(max_chunks=5, use_graph_search=True))

        assert result.failed_strategies == ["graph"]
        assert "Back Training Guide" in [r.document_title for r in result.results]

    @pytest.mark.asyncio
    async def test_mandatory_lookup_respects_deadline(self, vector_store, text_store):
        engine = build_engine(
            embedder=UnavailableEmbeddingClient(), vector_store=vector_store, text_store=_SlowMarkerTextStore(text_store)
        )
        config = RetrievalConfig(max_chunks=5, deadline_seconds=1.0, similarity_threshold=0.99, score_floor=0.99)
        started = time.monotonic()

        result = await engine.retrieve("create a 4 day workout program", config)

        assert time.monotonic() - started < 1.5
        assert result.query.query_type == QueryType.PROGRAM_GENERATION
        assert "mandatory_content" in result.failed_strategies
        assert result.is_empty

    @pytest.mark.asyncio
    async def test_slow_analysis_falls_back_to_offline(self, fitness_corpus, embedder):
        engine = build_engine_from_corpus(fitness_corpus, embedder, translator=_SlowTranslator())

        result = await engine.retrieve("كيف أبني عضلات الظهر", RetrievalConfig(max_chunks=5, deadline_seconds=0.5))

        assert "query_analysis" in result.failed_strategies
        assert result.query.normalized_text == result.query.raw_text

    @pytest.mark.asyncio
    async def test_payload_contract(self, fitness_corpus, embedder):
        engine = build_engine_from_corpus(fitness_corpus, embedder)

        result = await engine.retrieve("how to grow my back", RetrievalConfig(max_chunks=4))
        payload = result.context.to_payload()

        assert set(payload) == {"contextText", "citations"}
        assert all(set(c) == {"id", "title"} for c in payload["citations"])
        assert payload["contextText"].count("\n\n") == len(result.context.results) - 1
