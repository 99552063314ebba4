"""PostgreSQL-backed vector and text-search store.

Vector similarity uses pgvector's cosine distance operator (``<=>``);
lexical ranking uses ``ts_rank_cd`` over an English ``tsvector``. Schema
(managed elsewhere):

- ``knowledge_items(id, title, status)``
- ``knowledge_chunks(knowledge_item_id, chunk_index, content, embedding vector)``
- ``knowledge_categories(id, name)``
- ``knowledge_item_categories(knowledge_item_id, knowledge_category_id)``

SQLAlchemy calls are blocking, so each query runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import re

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from coach_rag.config.settings import settings
from coach_rag.rag.errors import StoreUnavailable
from coach_rag.rag.types import ChunkRef, StoreHit, TermQuery

_CATEGORIES_LATERAL = """
LEFT JOIN LATERAL (
    SELECT array_agg(kcat.name) AS names
    FROM knowledge_item_categories kic
    JOIN knowledge_categories kcat ON kic.knowledge_category_id = kcat.id
    WHERE kic.knowledge_item_id = ki.id
) cats ON true
"""

_VECTOR_SQL = """
SELECT kc.knowledge_item_id AS document_id, kc.chunk_index, kc.content, ki.title,
       1 - (kc.embedding <=> CAST(:embedding AS vector)) AS score,
       cats.names AS categories
FROM knowledge_chunks kc
JOIN knowledge_items ki ON kc.knowledge_item_id = ki.id
{categories_join}
WHERE ki.status = 'READY'
  AND kc.embedding IS NOT NULL
  {category_clause}
ORDER BY kc.embedding <=> CAST(:embedding AS vector), kc.knowledge_item_id, kc.chunk_index
LIMIT :limit
"""

_KEYWORD_SQL = """
SELECT kc.knowledge_item_id AS document_id, kc.chunk_index, kc.content, ki.title,
       LEAST(ts_rank_cd(to_tsvector('english', {field}), to_tsquery('english', :tsquery)), 1.0) AS score,
       cats.names AS categories
FROM knowledge_chunks kc
JOIN knowledge_items ki ON kc.knowledge_item_id = ki.id
{categories_join}
WHERE ki.status = 'READY'
  AND to_tsvector('english', {field}) @@ to_tsquery('english', :tsquery)
ORDER BY score DESC, kc.knowledge_item_id, kc.chunk_index
LIMIT :limit
"""

_WORD = re.compile(r"\w+")


def to_tsquery_string(term_query: TermQuery) -> str:
    """Render a term query as ``to_tsquery`` syntax.

    Multi-word terms become phrase queries (``a <-> b``); terms are joined
    with ``|`` or ``&`` depending on the match mode.
    """
    parts: list[str] = []
    for term in term_query.terms:
        words = _WORD.findall(term.lower())
        if not words:
            continue
        parts.append(words[0] if len(words) == 1 else "(" + " <-> ".join(words) + ")")
    joiner = " & " if term_query.mode == "and" else " | "
    return joiner.join(parts)


def _row_to_hit(row) -> StoreHit:
    return StoreHit(
        chunk_ref=ChunkRef(str(row.document_id), int(row.chunk_index)),
        content=row.content,
        title=row.title,
        score=float(row.score),
        categories=frozenset(row.categories or ()),
    )


class PostgresKnowledgeStore:
    """Vector store and text-search store over the knowledge tables."""

    def __init__(self, engine: Engine | None = None, database_url: str | None = None):
        """Initialize store.

        Args:
            engine: Preconfigured SQLAlchemy engine
            database_url: Connection URL used when no engine is given (defaults to settings)
        """
        self._engine = engine
        self.database_url = database_url or settings.database_url

    def _get_engine(self) -> Engine:
        if self._engine is None:
            if not self.database_url:
                raise StoreUnavailable("postgres", "DATABASE_URL not set")
            logger.info("Initializing knowledge store engine")
            self._engine = create_engine(self.database_url, pool_pre_ping=True, pool_size=5, max_overflow=10)
        return self._engine

    def _fetch(self, strategy: str, sql: str, params: dict) -> list[StoreHit]:
        try:
            with self._get_engine().connect() as conn:
                rows = conn.execute(text(sql), params).fetchall()
        except SQLAlchemyError as e:
            raise StoreUnavailable(strategy, f"Knowledge store query failed: {e}") from e
        return [_row_to_hit(row) for row in rows]

    async def nearest_neighbors(
        self,
        embedding: list[float],
        limit: int,
        category_filter: tuple[str, ...] | None = None,
    ) -> list[StoreHit]:
        params: dict = {"embedding": "[" + ",".join(str(float(v)) for v in embedding) + "]", "limit": limit}
        category_clause = ""
        if category_filter:
            category_clause = "AND cats.names && CAST(:categories AS text[])"
            params["categories"] = list(category_filter)
        sql = _VECTOR_SQL.format(categories_join=_CATEGORIES_LATERAL, category_clause=category_clause)
        return await asyncio.to_thread(self._fetch, "vector", sql, params)

    async def search(self, term_query: TermQuery, limit: int) -> list[StoreHit]:
        tsquery = to_tsquery_string(term_query)
        if not tsquery:
            return []
        field = "ki.title" if term_query.title_only else "kc.content"
        sql = _KEYWORD_SQL.format(field=field, categories_join=_CATEGORIES_LATERAL)
        return await asyncio.to_thread(self._fetch, "keyword", sql, {"tsquery": tsquery, "limit": limit})

    def category_vocabulary(self) -> frozenset[str]:
        try:
            with self._get_engine().connect() as conn:
                rows = conn.execute(text("SELECT name FROM knowledge_categories")).fetchall()
        except SQLAlchemyError as e:
            raise StoreUnavailable("postgres", f"Could not load category vocabulary: {e}") from e
        return frozenset(row.name for row in rows)

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
