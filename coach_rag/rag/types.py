"""Canonical types for the hybrid knowledge retrieval engine.

Corpus records (documents, chunks) are produced by an external ingestion
pipeline and are read-only here. Query, Candidate and RankedResult live
only for the duration of one retrieval call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from coach_rag.config.settings import Settings

MatchMode = Literal["or", "and"]


class DocumentStatus(StrEnum):
    PENDING = "PENDING"
    READY = "READY"
    ERROR = "ERROR"


class Strategy(StrEnum):
    """Closed set of retrieval strategies a candidate can come from."""

    VECTOR = "vector"
    KEYWORD = "keyword"
    GRAPH = "graph"


class QueryType(StrEnum):
    PROGRAM_GENERATION = "program_generation"
    PROGRAM_REVIEW = "program_review"
    MYTH_CHECK = "myth_check"
    MUSCLE_FOCUSED = "muscle_focused"
    GENERAL = "general"


class Language(StrEnum):
    ENGLISH = "english"
    FRENCH = "french"
    ARABIC = "arabic"


@dataclass(frozen=True, order=True)
class ChunkRef:
    """Unique key of a chunk: owning document plus zero-based position."""

    document_id: str
    index: int


@dataclass(frozen=True)
class Document:
    id: str
    title: str
    status: DocumentStatus
    categories: frozenset[str] = frozenset()

    @property
    def is_searchable(self) -> bool:
        return self.status == DocumentStatus.READY


@dataclass(frozen=True)
class Chunk:
    id: str
    document_id: str
    index: int
    content: str
    embedding: list[float] | None = field(default=None, compare=False, repr=False)

    @property
    def ref(self) -> ChunkRef:
        return ChunkRef(self.document_id, self.index)


@dataclass(frozen=True)
class Query:
    """Analysed form of one user question."""

    raw_text: str
    detected_language: Language
    normalized_text: str
    semantically_expanded_text: str
    sub_queries: tuple[str, ...]
    query_type: QueryType
    myth_check: bool = False
    mentioned_entities: frozenset[str] = frozenset()
    priority_categories: tuple[str, ...] = ()
    contextualized_text: str = ""

    def search_text(self, position: int) -> str:
        """Text to search with for the sub-query at ``position``.

        The first sub-query is the original question, so it is searched with
        its term-mapped expansion.
        """
        if position == 0:
            return self.semantically_expanded_text
        return self.sub_queries[position]


@dataclass(frozen=True)
class TermQuery:
    """Tokenized lexical query for a text-search store."""

    terms: tuple[str, ...]
    mode: MatchMode = "or"
    title_only: bool = False


@dataclass(frozen=True)
class StoreHit:
    """One row returned by a vector or text-search store."""

    chunk_ref: ChunkRef
    content: str
    title: str
    score: float
    categories: frozenset[str] = frozenset()


@dataclass(frozen=True)
class RelatedEntity:
    name: str
    relation_type: str


@dataclass(frozen=True)
class Candidate:
    """A chunk proposed by one or more strategies, with per-strategy scores."""

    chunk_ref: ChunkRef
    content: str
    document_title: str
    strategy_scores: dict[Strategy, float]
    categories: frozenset[str] = frozenset()

    @classmethod
    def from_hit(cls, hit: StoreHit, strategy: Strategy, score: float | None = None) -> Candidate:
        return cls(
            chunk_ref=hit.chunk_ref,
            content=hit.content,
            document_title=hit.title,
            strategy_scores={strategy: hit.score if score is None else score},
            categories=hit.categories,
        )

    def merged_with(self, other: Candidate) -> Candidate:
        """Combine two candidates for the same chunk.

        Scores from different strategies are all kept; for the same strategy
        the best score wins.
        """
        scores = dict(self.strategy_scores)
        for strategy, score in other.strategy_scores.items():
            scores[strategy] = max(score, scores.get(strategy, score))
        return Candidate(
            chunk_ref=self.chunk_ref,
            content=self.content,
            document_title=self.document_title,
            strategy_scores=scores,
            categories=self.categories | other.categories,
        )

    @property
    def sources(self) -> frozenset[Strategy]:
        return frozenset(self.strategy_scores)


@dataclass(frozen=True)
class RankedResult:
    chunk_ref: ChunkRef
    content: str
    document_title: str
    fused_score: float
    is_high_relevance: bool
    sources: frozenset[Strategy]
    categories: frozenset[str] = frozenset()
    is_mandatory: bool = False


@dataclass(frozen=True)
class FusionOptions:
    """Weights, bonuses and cutoffs for score fusion.

    Defaults are tunable starting points, not invariants.
    """

    max_chunks: int = 8
    similarity_threshold: float = 0.7
    high_relevance_threshold: float = 0.85
    score_floor: float = 0.4
    vector_weight: float = 0.7
    keyword_weight: float = 0.3
    graph_weight: float = 0.25
    multi_source_bonus: float = 0.1
    vector_graph_bonus: float = 0.15
    entity_boost: float = 0.1
    max_entity_boost: float = 0.3
    guide_boost: float = 0.05
    early_chunk_boost: float = 0.02
    early_chunk_cutoff: int = 3
    strict_category_priority: bool = False
    dynamic_threshold_adjustment: bool = False
    min_acceptable_results: int = 3
    mandatory_chunk_limit: int = 3

    def weight_for(self, strategy: Strategy) -> float:
        match strategy:
            case Strategy.VECTOR:
                return self.vector_weight
            case Strategy.KEYWORD:
                return self.keyword_weight
            case Strategy.GRAPH:
                return self.graph_weight


class RetrievalConfig(BaseModel):
    """Per-request retrieval configuration.

    Defaults come from ``Settings``; callers override per request with
    ``model_copy(update=...)``.
    """

    max_chunks: int = Field(default=8, ge=1)
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    high_relevance_threshold: float = Field(default=0.85, ge=0.0)
    use_graph_search: bool = False
    graph_weight: float = Field(default=0.25, ge=0.0)
    strict_category_priority: bool = False
    keyword_match_mode: MatchMode = "or"
    vector_weight: float = Field(default=0.7, ge=0.0)
    keyword_weight: float = Field(default=0.3, ge=0.0)
    score_floor: float = Field(default=0.4, ge=0.0, le=1.0)
    dynamic_threshold_adjustment: bool = False
    min_acceptable_results: int = Field(default=3, ge=0)
    deadline_seconds: float = Field(default=45.0, gt=0.0)

    @classmethod
    def from_settings(cls, settings: Settings) -> RetrievalConfig:
        return cls(
            max_chunks=settings.max_chunks,
            similarity_threshold=settings.similarity_threshold,
            high_relevance_threshold=settings.high_relevance_threshold,
            use_graph_search=settings.use_graph_search,
            graph_weight=settings.graph_weight,
            strict_category_priority=settings.strict_category_priority,
            vector_weight=settings.vector_weight,
            keyword_weight=settings.keyword_weight,
            score_floor=settings.score_floor,
            deadline_seconds=settings.deadline_seconds,
        )

    def fusion_options(self) -> FusionOptions:
        return FusionOptions(
            max_chunks=self.max_chunks,
            similarity_threshold=self.similarity_threshold,
            high_relevance_threshold=self.high_relevance_threshold,
            score_floor=self.score_floor,
            vector_weight=self.vector_weight,
            keyword_weight=self.keyword_weight,
            graph_weight=self.graph_weight,
            strict_category_priority=self.strict_category_priority,
            dynamic_threshold_adjustment=self.dynamic_threshold_adjustment,
            min_acceptable_results=self.min_acceptable_results,
        )
