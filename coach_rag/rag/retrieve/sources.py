"""Candidate sources: vector, keyword and graph.

Each source wraps one store (plus the embedding client for vectors) and
turns store hits into single-strategy ``Candidate`` lists. Sources raise
soft errors on failure; the retriever decides what to do with them.
"""

import asyncio
import math
from collections.abc import Awaitable
from typing import Protocol, TypeVar

from coach_rag.config.settings import settings
from coach_rag.rag.embed.embedder import EMBEDDING_STRATEGY_NAME, EmbeddingClient
from coach_rag.rag.errors import CollaboratorTimeout, SoftRetrievalError, StoreUnavailable
from coach_rag.rag.logging import log_strategy_failure
from coach_rag.rag.query.entities import entity_aliases
from coach_rag.rag.retrieve.tokenizer import build_term_query
from coach_rag.rag.types import Candidate, MatchMode, RelatedEntity, StoreHit, Strategy, TermQuery

T = TypeVar("T")

RESTRICTED_MIN_SHARE = 0.5
TITLE_MATCH_SCORE = 0.9
GRAPH_RELATED_LIMIT = 5


class VectorStore(Protocol):
    async def nearest_neighbors(
        self, embedding: list[float], limit: int, category_filter: tuple[str, ...] | None = None
    ) -> list[StoreHit]: ...


class TextSearchStore(Protocol):
    async def search(self, term_query: TermQuery, limit: int) -> list[StoreHit]: ...


class GraphStore(Protocol):
    async def related_entities(self, entity_name: str, limit: int) -> list[RelatedEntity]: ...


async def with_timeout(strategy: str, awaitable: Awaitable[T], timeout: float) -> T:
    """Await ``awaitable``, turning a timeout into ``CollaboratorTimeout``."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as e:
        raise CollaboratorTimeout(strategy, f"No response within {timeout}s") from e


def per_sub_query_target(max_chunks: int, sub_query_count: int) -> int:
    """Nearest-neighbour count per sub-query: 2 x maxChunks spread over sub-queries."""
    return max(1, math.ceil(2 * max_chunks / max(1, sub_query_count)))


class VectorCandidateSource:
    strategy = Strategy.VECTOR

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: VectorStore,
        embedding_timeout: float | None = None,
        store_timeout: float | None = None,
    ):
        self.embedder = embedder
        self.store = store
        self.embedding_timeout = embedding_timeout or settings.embedding_timeout_seconds
        self.store_timeout = store_timeout or settings.store_timeout_seconds

    async def candidates(self, text: str, limit: int, priority_categories: tuple[str, ...] = ()) -> list[Candidate]:
        """Nearest chunks for ``text``, category-restricted first.

        When the restricted search yields less than half of ``limit``, an
        unrestricted search fills in; restricted hits win on duplicate keys.
        """
        embedding = await with_timeout(EMBEDDING_STRATEGY_NAME, self.embedder.embed(text), self.embedding_timeout)

        hits: dict = {}
        if priority_categories:
            restricted = await with_timeout(
                self.strategy,
                self.store.nearest_neighbors(embedding, limit, priority_categories),
                self.store_timeout,
            )
            hits = {hit.chunk_ref: hit for hit in restricted}

        if len(hits) < RESTRICTED_MIN_SHARE * limit:
            unrestricted = await with_timeout(
                self.strategy, self.store.nearest_neighbors(embedding, limit), self.store_timeout
            )
            for hit in unrestricted:
                hits.setdefault(hit.chunk_ref, hit)

        return [Candidate.from_hit(hit, self.strategy) for hit in hits.values()]


class KeywordCandidateSource:
    strategy = Strategy.KEYWORD

    def __init__(self, store: TextSearchStore, store_timeout: float | None = None):
        self.store = store
        self.store_timeout = store_timeout or settings.store_timeout_seconds

    async def candidates(self, text: str, limit: int, mode: MatchMode = "or") -> list[Candidate]:
        term_query = build_term_query(text, mode)
        if term_query is None:
            return []
        hits = await with_timeout(self.strategy, self.store.search(term_query, limit), self.store_timeout)
        return [Candidate.from_hit(hit, self.strategy) for hit in hits]

    async def title_candidates(self, muscles: list[str], limit: int) -> list[Candidate]:
        """Chunks of documents whose title names one of ``muscles``.

        A title match is strong evidence, so hits get a fixed high score.
        """
        terms: list[str] = []
        for muscle in muscles:
            for alias in entity_aliases(muscle):
                if alias not in terms:
                    terms.append(alias)
        if not terms:
            return []
        term_query = TermQuery(terms=tuple(terms), mode="or", title_only=True)
        hits = await with_timeout(self.strategy, self.store.search(term_query, limit), self.store_timeout)
        return [Candidate.from_hit(hit, self.strategy, score=TITLE_MATCH_SCORE) for hit in hits]

    async def marker_candidates(self, markers: tuple[str, ...], limit: int) -> list[Candidate]:
        term_query = TermQuery(terms=markers, mode="or")
        hits = await with_timeout(self.strategy, self.store.search(term_query, limit), self.store_timeout)
        return [Candidate.from_hit(hit, self.strategy) for hit in hits]


class GraphCandidateSource:
    """Expands query entities through the graph, then searches for the related names.

    Runs once per retrieval over the query-level entity set. Every store
    call (one lookup per entity, then the text search) takes its own slot
    from ``limiter`` when one is given.
    """

    strategy = Strategy.GRAPH

    def __init__(
        self,
        graph_store: GraphStore,
        text_store: TextSearchStore,
        store_timeout: float | None = None,
        related_limit: int = GRAPH_RELATED_LIMIT,
    ):
        self.graph_store = graph_store
        self.text_store = text_store
        self.store_timeout = store_timeout or settings.store_timeout_seconds
        self.related_limit = related_limit

    async def _limited(self, awaitable: Awaitable[T], limiter: asyncio.Semaphore | None) -> T:
        if limiter is None:
            return await with_timeout(self.strategy, awaitable, self.store_timeout)
        async with limiter:
            return await with_timeout(self.strategy, awaitable, self.store_timeout)

    async def related_names(self, entities: frozenset[str], limiter: asyncio.Semaphore | None = None) -> list[str]:
        """Related entity names, excluding the entities themselves.

        Failed lookups are logged and skipped; the call fails only when
        every lookup does.
        """
        ordered = sorted(entities)
        lookups = await asyncio.gather(
            *(self._limited(self.graph_store.related_entities(name, self.related_limit), limiter) for name in ordered),
            return_exceptions=True,
        )

        errors = [result for result in lookups if isinstance(result, Exception)]
        if errors and len(errors) == len(lookups):
            raise errors[0]
        for error in errors:
            if not isinstance(error, SoftRetrievalError):
                error = StoreUnavailable(self.strategy, f"Unexpected {type(error).__name__}: {error}")
            log_strategy_failure(error)

        mentioned = {e.lower() for e in entities}
        names: list[str] = []
        for related in lookups:
            if isinstance(related, Exception):
                continue
            for rel in related:
                key = rel.name.lower()
                if key not in mentioned and key not in (n.lower() for n in names):
                    names.append(rel.name)
        return names

    async def candidates(
        self, entities: frozenset[str], limit: int, limiter: asyncio.Semaphore | None = None
    ) -> list[Candidate]:
        if not entities:
            return []
        names = await self.related_names(entities, limiter)
        if not names:
            return []
        term_query = TermQuery(terms=tuple(names), mode="or")
        hits = await self._limited(self.text_store.search(term_query, limit), limiter)
        return [Candidate.from_hit(hit, self.strategy) for hit in hits]
