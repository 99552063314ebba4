"""Hybrid retrieval engine facade.

Wires the query analyzer, candidate retriever, fusion engine and result
assembler together under one overall deadline:

raw query → Query → candidates → ranked results → context + citations
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from loguru import logger

from coach_rag.config.settings import Settings, settings
from coach_rag.rag.cache import BoundedCache
from coach_rag.rag.embed.embedder import CachedEmbeddingClient, EmbeddingClient
from coach_rag.rag.errors import CollaboratorTimeout, SoftRetrievalError, StoreUnavailable
from coach_rag.rag.index.corpus import KnowledgeCorpus
from coach_rag.rag.index.graph_index import InMemoryGraphStore
from coach_rag.rag.index.text_index import InMemoryTextStore
from coach_rag.rag.index.vector_index import InMemoryVectorStore
from coach_rag.rag.logging import log_context_assembly, log_retrieval, log_strategy_failure
from coach_rag.rag.query.analyzer import QueryAnalyzer, validate_query
from coach_rag.rag.query.contextualizer import Contextualizer
from coach_rag.rag.query.decomposition import SubQueryGenerator
from coach_rag.rag.query.translation import Translator
from coach_rag.rag.retrieve.assembler import RagContext, assemble_context
from coach_rag.rag.retrieve.confidence import RetrievalConfidence, compute_confidence
from coach_rag.rag.retrieve.fusion import FusionEngine
from coach_rag.rag.retrieve.retriever import CandidateRetriever
from coach_rag.rag.retrieve.sources import (
    GraphCandidateSource,
    GraphStore,
    KeywordCandidateSource,
    TextSearchStore,
    VectorCandidateSource,
    VectorStore,
)
from coach_rag.rag.types import Candidate, Query, RankedResult, RetrievalConfig

# Share of the overall deadline that query analysis may use before falling back
ANALYSIS_DEADLINE_SHARE = 0.6
# Time reserved after candidate retrieval for fusion, the mandatory lookup and assembly
POST_RETRIEVAL_RESERVE_SECONDS = 0.5
MANDATORY_CONTENT_STRATEGY = "mandatory_content"


@dataclass
class RetrievalResult:
    """Everything one retrieval produced, including diagnostics."""

    query: Query
    results: list[RankedResult]
    context: RagContext
    confidence: RetrievalConfidence
    failed_strategies: list[str] = field(default_factory=list)
    deadline_exceeded: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.results


class HybridRetrievalEngine:
    """Hybrid knowledge retrieval over vector, keyword and graph strategies."""

    def __init__(
        self,
        analyzer: QueryAnalyzer,
        retriever: CandidateRetriever,
        fusion: FusionEngine | None = None,
        default_config: RetrievalConfig | None = None,
    ):
        self.analyzer = analyzer
        self.retriever = retriever
        self.fusion = fusion or FusionEngine()
        self.default_config = default_config or RetrievalConfig.from_settings(settings)

    async def retrieve(
        self,
        raw_query: str,
        config: RetrievalConfig | None = None,
        history_hint: str | None = None,
    ) -> RetrievalResult:
        """Retrieve grounding context for a user question.

        Args:
            raw_query: Question as typed by the user
            config: Per-request configuration (defaults to settings)
            history_hint: Optional recent conversation for follow-up questions

        Returns:
            RetrievalResult; empty results signal the caller to fall back to
            general-knowledge mode

        Raises:
            InputValidationError: If the query is empty or whitespace-only
        """
        config = config or self.default_config
        started = time.monotonic()
        failed: list[str] = []

        validate_query(raw_query)
        try:
            query = await asyncio.wait_for(
                self.analyzer.analyze(raw_query, history_hint=history_hint, failures=failed),
                timeout=config.deadline_seconds * ANALYSIS_DEADLINE_SHARE,
            )
        except TimeoutError:
            logger.warning("Query analysis ran out of time, continuing with offline analysis")
            failed.append("query_analysis")
            query = self.analyzer.analyze_offline(raw_query)

        deadline = started + config.deadline_seconds
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning("Retrieval deadline exceeded during query analysis")
            return self._finish(query, [], config, started, failed, deadline_exceeded=True)

        outcome = await self.retriever.retrieve(
            query, config, timeout=max(remaining - POST_RETRIEVAL_RESERVE_SECONDS, remaining / 2)
        )
        failed += [str(s) for s in outcome.failed_strategies]

        if outcome.all_failed:
            logger.error(
                "All retrieval strategies failed",
                query=raw_query,
                failed_strategies=failed,
                deadline_exceeded=outcome.deadline_exceeded,
            )
            return self._finish(query, [], config, started, failed, outcome.deadline_exceeded)

        results = await self.fusion.fuse(
            outcome.candidates,
            query,
            config.fusion_options(),
            mandatory_lookup=None if outcome.deadline_exceeded else self._mandatory_lookup(failed, deadline),
        )
        return self._finish(query, results, config, started, failed, outcome.deadline_exceeded)

    def _mandatory_lookup(self, failed: list[str], deadline: float):
        """Marker lookup for mandatory content, bounded by the overall deadline."""
        keyword_source = self.retriever.keyword_source

        async def lookup(markers: tuple[str, ...], limit: int) -> list[Candidate]:
            remaining = deadline - time.monotonic()
            try:
                if remaining <= 0:
                    raise CollaboratorTimeout(MANDATORY_CONTENT_STRATEGY, "No time left before the retrieval deadline")
                return await asyncio.wait_for(keyword_source.marker_candidates(markers, limit), timeout=remaining)
            except TimeoutError:
                error = CollaboratorTimeout(MANDATORY_CONTENT_STRATEGY, f"Lookup exceeded the remaining {remaining:.2f}s")
            except SoftRetrievalError as e:
                error = e
            except Exception as e:
                error = StoreUnavailable(MANDATORY_CONTENT_STRATEGY, f"Unexpected {type(e).__name__}: {e}")
            log_strategy_failure(error)
            failed.append(MANDATORY_CONTENT_STRATEGY)
            return []

        return lookup

    def _finish(
        self,
        query: Query,
        results: list[RankedResult],
        config: RetrievalConfig,
        started: float,
        failed: list[str],
        deadline_exceeded: bool,
    ) -> RetrievalResult:
        context = assemble_context(results, config.max_chunks)
        confidence = compute_confidence(context.results)
        log_retrieval(
            query,
            config.max_chunks,
            results=context.results,
            confidence=confidence,
            failed_strategies=failed,
            deadline_exceeded=deadline_exceeded,
            elapsed_ms=(time.monotonic() - started) * 1000,
        )
        log_context_assembly(context)
        return RetrievalResult(
            query=query,
            results=results[: config.max_chunks],
            context=context,
            confidence=confidence,
            failed_strategies=failed,
            deadline_exceeded=deadline_exceeded,
        )


def build_engine(
    *,
    embedder: EmbeddingClient,
    vector_store: VectorStore,
    text_store: TextSearchStore,
    graph_store: GraphStore | None = None,
    translator: Translator | None = None,
    sub_query_generator: SubQueryGenerator | None = None,
    contextualizer: Contextualizer | None = None,
    category_vocabulary: frozenset[str] | None = None,
    app_settings: Settings | None = None,
) -> HybridRetrievalEngine:
    """Assemble an engine from stores and collaborators.

    Caches are created here, one per engine, and shared by all its calls.
    """
    cfg = app_settings or settings
    if cfg.embedding_cache_size > 0:
        embedder = CachedEmbeddingClient(embedder, BoundedCache(cfg.embedding_cache_size))

    analyzer = QueryAnalyzer(
        translator=translator,
        sub_query_generator=sub_query_generator,
        contextualizer=contextualizer,
        translation_cache=BoundedCache(cfg.translation_cache_size),
        category_vocabulary=category_vocabulary,
        translation_timeout=cfg.translation_timeout_seconds,
        decomposition_timeout=cfg.decomposition_timeout_seconds,
    )
    retriever = CandidateRetriever(
        vector_source=VectorCandidateSource(
            embedder,
            vector_store,
            embedding_timeout=cfg.embedding_timeout_seconds,
            store_timeout=cfg.store_timeout_seconds,
        ),
        keyword_source=KeywordCandidateSource(text_store, store_timeout=cfg.store_timeout_seconds),
        graph_source=(
            GraphCandidateSource(graph_store, text_store, store_timeout=cfg.store_timeout_seconds)
            if graph_store is not None
            else None
        ),
        max_concurrency=cfg.max_concurrency,
    )
    return HybridRetrievalEngine(analyzer, retriever, default_config=RetrievalConfig.from_settings(cfg))


def build_engine_from_corpus(
    corpus: KnowledgeCorpus,
    embedder: EmbeddingClient,
    **collaborators,
) -> HybridRetrievalEngine:
    """Engine over in-memory stores built from a corpus snapshot."""
    return build_engine(
        embedder=embedder,
        vector_store=InMemoryVectorStore(corpus),
        text_store=InMemoryTextStore(corpus),
        graph_store=InMemoryGraphStore.from_corpus(corpus),
        category_vocabulary=corpus.category_vocabulary() or None,
        **collaborators,
    )
