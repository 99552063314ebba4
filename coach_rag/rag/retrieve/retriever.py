"""Concurrent candidate retrieval.

For every sub-query the vector and keyword sources run concurrently; the
graph source runs once per retrieval. All calls share a concurrency
ceiling. A failed or timed-out call contributes nothing and is logged; the
overall deadline cancels whatever is still running and keeps what has
completed.
"""

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from coach_rag.config.settings import settings
from coach_rag.rag.errors import SoftRetrievalError, StoreUnavailable
from coach_rag.rag.logging import log_strategy_failure
from coach_rag.rag.query.entities import muscle_groups
from coach_rag.rag.retrieve.sources import (
    GraphCandidateSource,
    KeywordCandidateSource,
    VectorCandidateSource,
    per_sub_query_target,
)
from coach_rag.rag.types import Candidate, ChunkRef, Query, QueryType, RetrievalConfig, Strategy


@dataclass
class RetrievalOutcome:
    """Merged candidates plus diagnostics for one retrieval."""

    candidates: list[Candidate]
    failed_strategies: list[Strategy] = field(default_factory=list)
    deadline_exceeded: bool = False
    calls_issued: int = 0
    calls_failed: int = 0

    @property
    def all_failed(self) -> bool:
        return self.calls_issued > 0 and self.calls_failed == self.calls_issued


def merge_candidates(lists: list[list[Candidate]]) -> list[Candidate]:
    """Merge candidate lists keyed by chunk, keeping every strategy's score."""
    merged: dict[ChunkRef, Candidate] = {}
    for candidates in lists:
        for candidate in candidates:
            existing = merged.get(candidate.chunk_ref)
            merged[candidate.chunk_ref] = candidate if existing is None else existing.merged_with(candidate)
    return list(merged.values())


class CandidateRetriever:
    """Fans out candidate sources and merges their results."""

    def __init__(
        self,
        vector_source: VectorCandidateSource,
        keyword_source: KeywordCandidateSource,
        graph_source: GraphCandidateSource | None = None,
        max_concurrency: int | None = None,
    ):
        """Initialize retriever.

        Args:
            vector_source: Dense vector source
            keyword_source: Lexical source
            graph_source: Optional graph expansion source
            max_concurrency: Ceiling on concurrent calls (defaults to settings)
        """
        self.vector_source = vector_source
        self.keyword_source = keyword_source
        self.graph_source = graph_source
        self.max_concurrency = max_concurrency or settings.max_concurrency

    def _plan(
        self, query: Query, config: RetrievalConfig, semaphore: asyncio.Semaphore
    ) -> list[tuple[Strategy, Coroutine[Any, Any, list[Candidate]]]]:
        target = per_sub_query_target(config.max_chunks, len(query.sub_queries))
        calls: list[tuple[Strategy, Coroutine[Any, Any, list[Candidate]]]] = []

        for position in range(len(query.sub_queries)):
            text = query.search_text(position)
            calls.append((Strategy.VECTOR, self.vector_source.candidates(text, target, query.priority_categories)))
            calls.append((Strategy.KEYWORD, self.keyword_source.candidates(text, target, config.keyword_match_mode)))

        muscles = muscle_groups(query.mentioned_entities)
        if query.query_type == QueryType.MUSCLE_FOCUSED and muscles:
            calls.append((Strategy.KEYWORD, self.keyword_source.title_candidates(muscles, target)))

        if config.use_graph_search and self.graph_source is not None and query.mentioned_entities:
            calls.append((Strategy.GRAPH, self.graph_source.candidates(query.mentioned_entities, target, semaphore)))

        return calls

    async def retrieve(
        self,
        query: Query,
        config: RetrievalConfig,
        timeout: float | None = None,
    ) -> RetrievalOutcome:
        """Retrieve and merge candidates for an analysed query.

        Args:
            query: Analysed query
            config: Per-request configuration
            timeout: Time left before the overall deadline (defaults to ``config.deadline_seconds``)

        Returns:
            RetrievalOutcome; never raises for strategy failures
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        calls = self._plan(query, config, semaphore)

        async def guarded(strategy: Strategy, coro: Coroutine[Any, Any, list[Candidate]]) -> list[Candidate] | None:
            try:
                if strategy == Strategy.GRAPH:
                    # Graph expansion takes a slot per store call
                    return await coro
                async with semaphore:
                    return await coro
            except SoftRetrievalError as e:
                log_strategy_failure(e)
                return None
            except Exception as e:
                log_strategy_failure(StoreUnavailable(strategy, f"Unexpected {type(e).__name__}: {e}"))
                return None

        tasks = [asyncio.create_task(guarded(strategy, coro)) for strategy, coro in calls]
        deadline_exceeded = False
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=timeout or config.deadline_seconds)
            if pending:
                deadline_exceeded = True
                logger.warning(
                    "Retrieval deadline exceeded, using completed strategies only",
                    pending_calls=len(pending),
                    completed_calls=len(tasks) - len(pending),
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        collected: list[list[Candidate]] = []
        failed: list[Strategy] = []
        calls_failed = 0
        for (strategy, _), task in zip(calls, tasks, strict=True):
            result = None if task.cancelled() else task.result()
            if result is None:
                calls_failed += 1
                if strategy not in failed:
                    failed.append(strategy)
                continue
            collected.append(result)

        return RetrievalOutcome(
            candidates=merge_candidates(collected),
            failed_strategies=failed,
            deadline_exceeded=deadline_exceeded,
            calls_issued=len(tasks),
            calls_failed=calls_failed,
        )
