"""In-memory lexical index ranked with BM25.

Two ``BM25Okapi`` indexes are built per corpus, one over chunk content and
one over document titles. Terms may be multi-word phrases: a chunk matches
a term when the phrase occurs on word boundaries, and the phrase's words
feed the BM25 query. Scores are divided by the best score of the query, so
they lie in [0, 1].
"""

import re
from dataclasses import dataclass

from loguru import logger
from rank_bm25 import BM25Okapi

from coach_rag.rag.index.corpus import KnowledgeCorpus
from coach_rag.rag.query.semantic_map import phrase_pattern
from coach_rag.rag.retrieve.tokenizer import index_tokens
from coach_rag.rag.types import StoreHit, TermQuery


@dataclass(frozen=True)
class _Entry:
    hit: StoreHit
    content_lower: str
    title_lower: str


def _build_index(tokenized: list[list[str]]) -> BM25Okapi | None:
    # BM25Okapi divides by the average document length
    if not any(tokenized):
        return None
    return BM25Okapi(tokenized)


class InMemoryTextStore:
    """Text-search store over the searchable chunks of a corpus."""

    def __init__(self, corpus: KnowledgeCorpus):
        self.entries = [
            _Entry(
                hit=StoreHit(chunk_ref=chunk.ref, content=chunk.content, title=doc.title, score=0.0, categories=doc.categories),
                content_lower=chunk.content.lower(),
                title_lower=doc.title.lower(),
            )
            for chunk, doc in corpus.searchable_chunks()
        ]
        self.content_index = _build_index([index_tokens(e.content_lower) for e in self.entries])
        self.title_index = _build_index([index_tokens(e.title_lower) for e in self.entries])
        logger.debug("Built BM25 indexes", chunks=len(self.entries))

    def _matches(self, patterns: list[re.Pattern[str]], mode: str, title_only: bool) -> dict[int, int]:
        """Position of every matching entry mapped to its number of matched terms."""
        matches: dict[int, int] = {}
        for position, entry in enumerate(self.entries):
            text = entry.title_lower if title_only else entry.content_lower
            matched = sum(1 for pattern in patterns if pattern.search(text))
            if matched == 0 or (mode == "and" and matched < len(patterns)):
                continue
            matches[position] = matched
        return matches

    async def search(self, term_query: TermQuery, limit: int) -> list[StoreHit]:
        """Rank chunks matching ``term_query``.

        Args:
            term_query: Terms, match mode (``or``/``and``) and title restriction
            limit: Maximum number of hits

        Returns:
            Hits sorted by score descending, then by chunk key
        """
        if not self.entries or not term_query.terms or limit <= 0:
            return []

        patterns = [phrase_pattern(term.lower()) for term in term_query.terms]
        matches = self._matches(patterns, term_query.mode, term_query.title_only)
        if not matches:
            return []

        index = self.title_index if term_query.title_only else self.content_index
        query_tokens = [token for term in term_query.terms for token in index_tokens(term)]
        raw = index.get_scores(query_tokens) if index is not None and query_tokens else None
        top = max((float(raw[p]) for p in matches), default=0.0) if raw is not None else 0.0

        scored: list[StoreHit] = []
        for position, matched in matches.items():
            if top > 0:
                score = max(float(raw[position]), 0.0) / top
            else:
                # Corpora of one or two chunks give BM25 no positive idf
                score = matched / len(patterns)
            entry = self.entries[position]
            scored.append(
                StoreHit(
                    chunk_ref=entry.hit.chunk_ref,
                    content=entry.hit.content,
                    title=entry.hit.title,
                    score=score,
                    categories=entry.hit.categories,
                )
            )

        scored.sort(key=lambda h: (-h.score, h.chunk_ref))
        return scored[:limit]
