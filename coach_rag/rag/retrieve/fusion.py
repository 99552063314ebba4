"""Score fusion, filtering, mandatory content and diversification.

Pipeline:
weighted fusion → multi-source bonus → domain boosts → threshold filter →
high-relevance flag → (optional) threshold relaxation → mandatory content →
diversification.

Given identical candidates and options the output order is deterministic:
every sort has a total tie-break on the chunk key.
"""

from collections.abc import Awaitable, Callable
from dataclasses import replace

from loguru import logger

from coach_rag.rag.query.entities import entity_aliases
from coach_rag.rag.query.semantic_map import contains_phrase
from coach_rag.rag.types import Candidate, ChunkRef, FusionOptions, Query, QueryType, RankedResult, Strategy

GUIDE_MARKER = "guide"
THRESHOLD_STEP = 0.05
MIN_RELAXED_THRESHOLD = 0.05
MAX_RELAXATIONS = 2

# Content that a program-generation answer must be grounded in
MANDATORY_TOPIC_MARKERS = ("programming", "rep range", "volume")
MANDATORY_LOOKUP_TERMS = (*MANDATORY_TOPIC_MARKERS, "frequency")

MandatoryLookup = Callable[[tuple[str, ...], int], Awaitable[list[Candidate]]]


def fused_score(candidate: Candidate, opts: FusionOptions) -> float:
    """Weighted sum of the signals present; absent signals contribute 0."""
    return sum(opts.weight_for(strategy) * score for strategy, score in candidate.strategy_scores.items())


def source_bonus(sources: frozenset[Strategy], opts: FusionOptions) -> float:
    if Strategy.VECTOR in sources and Strategy.GRAPH in sources:
        return opts.vector_graph_bonus
    if len(sources) >= 2:
        return opts.multi_source_bonus
    return 0.0


def entity_matches(candidate: Candidate, entities: frozenset[str]) -> int:
    haystack = f"{candidate.document_title}\n{candidate.content}".lower()
    return sum(
        1 for entity in entities if any(contains_phrase(haystack, alias.lower()) for alias in entity_aliases(entity))
    )


def domain_boost(candidate: Candidate, query: Query, opts: FusionOptions) -> float:
    boost = min(opts.max_entity_boost, opts.entity_boost * entity_matches(candidate, query.mentioned_entities))
    if GUIDE_MARKER in candidate.document_title.lower():
        boost += opts.guide_boost
    if candidate.chunk_ref.index < opts.early_chunk_cutoff:
        boost += opts.early_chunk_boost
    return boost


def passes_threshold(score: float, threshold: float, floor: float) -> bool:
    """Keep a candidate that clears either the threshold or the absolute floor."""
    return score >= threshold or score >= floor


def has_mandatory_content(results: list[RankedResult]) -> bool:
    return any(any(marker in r.content.lower() for marker in MANDATORY_TOPIC_MARKERS) for r in results)


def _sort_key(result: RankedResult) -> tuple[float, ChunkRef]:
    return (-result.fused_score, result.chunk_ref)


class FusionEngine:
    """Fuses multi-strategy candidates into ranked, diversified results."""

    def score(self, candidates: list[Candidate], query: Query, opts: FusionOptions) -> list[RankedResult]:
        """Score every candidate without filtering, best first."""
        results = []
        for candidate in candidates:
            value = (
                fused_score(candidate, opts)
                + source_bonus(candidate.sources, opts)
                + domain_boost(candidate, query, opts)
            )
            results.append(
                RankedResult(
                    chunk_ref=candidate.chunk_ref,
                    content=candidate.content,
                    document_title=candidate.document_title,
                    fused_score=value,
                    is_high_relevance=value >= opts.high_relevance_threshold,
                    sources=candidate.sources,
                    categories=candidate.categories,
                )
            )
        results.sort(key=_sort_key)
        return results

    def filter(self, scored: list[RankedResult], opts: FusionOptions) -> list[RankedResult]:
        threshold = opts.similarity_threshold
        kept = [r for r in scored if passes_threshold(r.fused_score, threshold, opts.score_floor)]

        relaxations = 0
        while (
            opts.dynamic_threshold_adjustment
            and len(kept) < opts.min_acceptable_results
            and relaxations < MAX_RELAXATIONS
            and threshold > MIN_RELAXED_THRESHOLD
        ):
            relaxations += 1
            threshold = max(MIN_RELAXED_THRESHOLD, threshold - THRESHOLD_STEP)
            # Relaxation lowers both cutoffs; the floor never exceeds the threshold
            floor = min(opts.score_floor, threshold)
            kept = [r for r in scored if passes_threshold(r.fused_score, threshold, floor)]
            logger.info(f"Relaxed similarity threshold to {threshold:.2f}", results=len(kept))
        return kept

    async def fuse(
        self,
        candidates: list[Candidate],
        query: Query,
        opts: FusionOptions,
        mandatory_lookup: MandatoryLookup | None = None,
    ) -> list[RankedResult]:
        """Fuse candidates into the final ranked list.

        Args:
            candidates: Merged candidates (unique per chunk key)
            query: Analysed query
            opts: Fusion options
            mandatory_lookup: Targeted lexical lookup used for mandatory content

        Returns:
            At most ``opts.max_chunks`` results, mandatory content first
        """
        kept = self.filter(self.score(candidates, query, opts), opts)

        mandatory: list[RankedResult] = []
        if (
            query.query_type == QueryType.PROGRAM_GENERATION
            and mandatory_lookup is not None
            and not has_mandatory_content(kept)
        ):
            mandatory = await self._mandatory_results(query, opts, mandatory_lookup)
            pinned = {r.chunk_ref for r in mandatory}
            kept = [r for r in kept if r.chunk_ref not in pinned]

        limit = max(0, opts.max_chunks - len(mandatory))
        diversified = self.diversify(kept, limit, query.priority_categories if opts.strict_category_priority else ())
        return (mandatory + diversified)[: opts.max_chunks]

    async def _mandatory_results(
        self, query: Query, opts: FusionOptions, lookup: MandatoryLookup
    ) -> list[RankedResult]:
        limit = min(opts.mandatory_chunk_limit, opts.max_chunks)
        found = await lookup(MANDATORY_LOOKUP_TERMS, limit)
        if not found:
            logger.warning("No mandatory programming content found", query_type=query.query_type.value)
            return []
        scored = self.score(found, query, opts)
        logger.info("Injected mandatory programming content", chunks=len(scored[:limit]))
        return [replace(r, is_high_relevance=True, is_mandatory=True) for r in scored[:limit]]

    def diversify(
        self,
        results: list[RankedResult],
        limit: int,
        priority_categories: tuple[str, ...] = (),
    ) -> list[RankedResult]:
        """Round-robin across documents, best documents first.

        With ``priority_categories`` the round-robin runs tier by tier: a
        result's tier is the position of the first priority category its
        document carries, and results with none of them come last.
        """
        if limit <= 0:
            return []

        if not priority_categories:
            return self._round_robin(results, limit)

        def tier(result: RankedResult) -> int:
            for position, category in enumerate(priority_categories):
                if category in result.categories:
                    return position
            return len(priority_categories)

        tiers: dict[int, list[RankedResult]] = {}
        for result in results:
            tiers.setdefault(tier(result), []).append(result)

        selected: list[RankedResult] = []
        for position in sorted(tiers):
            selected += self._round_robin(tiers[position], limit - len(selected))
            if len(selected) >= limit:
                break
        return selected

    @staticmethod
    def _round_robin(results: list[RankedResult], limit: int) -> list[RankedResult]:
        groups: dict[str, list[RankedResult]] = {}
        for result in sorted(results, key=_sort_key):
            groups.setdefault(result.chunk_ref.document_id, []).append(result)

        ordered = sorted(groups.values(), key=lambda g: _sort_key(g[0]))
        selected: list[RankedResult] = []
        depth = 0
        while len(selected) < limit:
            added = False
            for group in ordered:
                if depth < len(group):
                    selected.append(group[depth])
                    added = True
                    if len(selected) == limit:
                        break
            if not added:
                break
            depth += 1
        return selected
