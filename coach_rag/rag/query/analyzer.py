"""Query analysis: raw user text to an analysed ``Query``.

Pipeline:
language detection → translation → (optional) history contextualization →
semantic term mapping → entity extraction → classification →
sub-query decomposition → category prioritization.

Every collaborator call is best-effort. Failures and timeouts fall back to
the unmodified text and are reported as soft failures.
"""

import asyncio

from loguru import logger

from coach_rag.config.settings import settings
from coach_rag.rag.cache import BoundedCache
from coach_rag.rag.errors import CollaboratorFailure, CollaboratorTimeout, InputValidationError, SoftRetrievalError
from coach_rag.rag.logging import log_strategy_failure
from coach_rag.rag.query.categories import derive_priority_categories, resolve_categories
from coach_rag.rag.query.classifier import classify_query
from coach_rag.rag.query.contextualizer import CONTEXTUALIZATION_STRATEGY_NAME, Contextualizer, needs_context
from coach_rag.rag.query.decomposition import (
    DECOMPOSITION_STRATEGY_NAME,
    SubQueryGenerator,
    build_sub_queries,
    should_decompose,
)
from coach_rag.rag.query.entities import extract_entities
from coach_rag.rag.query.language import detect_language
from coach_rag.rag.query.semantic_map import apply_semantic_mapping
from coach_rag.rag.query.translation import TRANSLATION_STRATEGY_NAME, CachedTranslator, Translator
from coach_rag.rag.types import Language, Query


class QueryAnalyzer:
    """Turns a raw question into an analysed ``Query``."""

    def __init__(
        self,
        translator: Translator | None = None,
        sub_query_generator: SubQueryGenerator | None = None,
        contextualizer: Contextualizer | None = None,
        translation_cache: BoundedCache[str, str] | None = None,
        category_vocabulary: frozenset[str] | None = None,
        translation_timeout: float | None = None,
        decomposition_timeout: float | None = None,
    ):
        """Initialize analyzer.

        Args:
            translator: Translation collaborator (None disables translation)
            sub_query_generator: Decomposition collaborator (None disables decomposition)
            contextualizer: History contextualizer (None disables rewriting)
            translation_cache: Bounded cache shared across calls; a fresh one is created if omitted
            category_vocabulary: Category tags present in the corpus
            translation_timeout: Per-call timeout for translation and contextualization
            decomposition_timeout: Per-call timeout for sub-query generation
        """
        if translator is not None:
            cache = translation_cache if translation_cache is not None else BoundedCache(settings.translation_cache_size)
            translator = CachedTranslator(translator, cache)
        self.translator = translator
        self.sub_query_generator = sub_query_generator
        self.contextualizer = contextualizer
        self.category_vocabulary = category_vocabulary
        self.translation_timeout = translation_timeout or settings.translation_timeout_seconds
        self.decomposition_timeout = decomposition_timeout or settings.decomposition_timeout_seconds

    async def analyze(
        self,
        raw_query: str,
        history_hint: str | None = None,
        failures: list[str] | None = None,
    ) -> Query:
        """Analyze a raw query.

        Args:
            raw_query: Text as typed by the user
            history_hint: Optional recent conversation for follow-up disambiguation
            failures: Optional list that collects the names of failed collaborators

        Returns:
            Analysed query

        Raises:
            InputValidationError: If the query is empty or whitespace-only
        """
        validate_query(raw_query)
        failed = failures if failures is not None else []

        language = detect_language(raw_query)
        normalized = raw_query
        if language != Language.ENGLISH and self.translator is not None:
            normalized = await self._call(
                TRANSLATION_STRATEGY_NAME,
                self.translator.translate(raw_query, language),
                self.translation_timeout,
                fallback=raw_query,
                failures=failed,
            )

        working = normalized
        if history_hint and history_hint.strip() and needs_context(normalized) and self.contextualizer is not None:
            working = await self._call(
                CONTEXTUALIZATION_STRATEGY_NAME,
                self.contextualizer.contextualize(normalized, history_hint),
                self.translation_timeout,
                fallback=normalized,
                failures=failed,
            )

        generated: list[str] = []
        if self.sub_query_generator is not None and should_decompose(working):
            generated = await self._call(
                DECOMPOSITION_STRATEGY_NAME,
                self.sub_query_generator.decompose(working),
                self.decomposition_timeout,
                fallback=[],
                failures=failed,
            )

        return self._build_query(raw_query, language, normalized, working, generated)

    def analyze_offline(self, raw_query: str) -> Query:
        """Analyze without any collaborator calls (no translation or decomposition)."""
        validate_query(raw_query)
        return self._build_query(raw_query, detect_language(raw_query), raw_query, raw_query, [])

    def _build_query(
        self,
        raw_query: str,
        language: Language,
        normalized: str,
        working: str,
        generated: list[str],
    ) -> Query:
        expanded = apply_semantic_mapping(working)
        entities = extract_entities(working)
        query_type, myth_check = classify_query(working, entities)
        priority = resolve_categories(
            derive_priority_categories(query_type, entities, myth_check, working),
            self.category_vocabulary,
        )
        sub_queries = build_sub_queries(working, generated)

        logger.debug(
            "Query analysed",
            language=language.value,
            query_type=query_type.value,
            myth_check=myth_check,
            entities=sorted(entities),
            sub_queries=len(sub_queries),
            priority_categories=list(priority),
        )
        return Query(
            raw_text=raw_query,
            detected_language=language,
            normalized_text=normalized,
            semantically_expanded_text=expanded,
            sub_queries=sub_queries,
            query_type=query_type,
            myth_check=myth_check,
            mentioned_entities=entities,
            priority_categories=priority,
            contextualized_text=working if working != normalized else "",
        )

    @staticmethod
    async def _call(strategy, awaitable, timeout, *, fallback, failures):
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except TimeoutError:
            error = CollaboratorTimeout(strategy, f"No response within {timeout}s")
        except SoftRetrievalError as e:
            error = e
        except Exception as e:
            error = CollaboratorFailure(strategy, f"Unexpected {type(e).__name__}: {e}")
        failures.append(strategy)
        log_strategy_failure(error)
        return fallback


def validate_query(raw_query: str) -> None:
    if not raw_query or not raw_query.strip():
        raise InputValidationError("Query must not be empty")
