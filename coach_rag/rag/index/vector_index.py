"""Vector index for cosine similarity search.

This module provides exact cosine similarity search over embedded chunks.
No ANN (approximate nearest neighbor) is used - exact search is acceptable
for the corpus size. Only chunks of READY documents that carry an
embedding are indexed.
"""

import numpy as np

from coach_rag.rag.errors import StoreUnavailable
from coach_rag.rag.index.corpus import KnowledgeCorpus
from coach_rag.rag.types import StoreHit


class InMemoryVectorStore:
    """In-memory vector store with exact cosine similarity search."""

    def __init__(self, corpus: KnowledgeCorpus):
        """Initialize vector store.

        Args:
            corpus: Corpus whose embedded, searchable chunks are indexed
        """
        self.entries: list[StoreHit] = []
        vectors: list[list[float]] = []
        for chunk, doc in corpus.searchable_chunks():
            if chunk.embedding is None:
                continue
            self.entries.append(
                StoreHit(chunk_ref=chunk.ref, content=chunk.content, title=doc.title, score=0.0, categories=doc.categories)
            )
            vectors.append(chunk.embedding)

        if vectors:
            matrix = np.array(vectors, dtype=np.float32)
            norms = np.linalg.norm(matrix, axis=1, keepdims=True)
            norms = np.where(norms == 0, 1, norms)  # Avoid division by zero
            self.normalized_vectors = matrix / norms
        else:
            self.normalized_vectors = np.zeros((0, 0), dtype=np.float32)

    async def nearest_neighbors(
        self,
        embedding: list[float],
        limit: int,
        category_filter: tuple[str, ...] | None = None,
    ) -> list[StoreHit]:
        """Search for the top ``limit`` chunks by cosine similarity.

        Args:
            embedding: Query embedding vector
            limit: Number of results to return
            category_filter: Restrict to documents carrying any of these tags

        Returns:
            Hits sorted by similarity descending

        Raises:
            StoreUnavailable: If the query dimension does not match the index
        """
        if not self.entries or limit <= 0:
            return []

        query_array = np.array(embedding, dtype=np.float32)
        if query_array.shape[0] != self.normalized_vectors.shape[1]:
            raise StoreUnavailable(
                "vector",
                f"Query dimension {query_array.shape[0]} does not match index dimension {self.normalized_vectors.shape[1]}",
            )
        query_norm = np.linalg.norm(query_array)
        if query_norm == 0:
            return []

        similarities = self.normalized_vectors @ (query_array / query_norm)
        wanted = set(category_filter) if category_filter else None

        results: list[StoreHit] = []
        # Stable sort: ties keep corpus order
        for idx in np.argsort(-similarities, kind="stable"):
            entry = self.entries[idx]
            if wanted is not None and not (entry.categories & wanted):
                continue
            results.append(
                StoreHit(
                    chunk_ref=entry.chunk_ref,
                    content=entry.content,
                    title=entry.title,
                    score=float(similarities[idx]),
                    categories=entry.categories,
                )
            )
            if len(results) == limit:
                break
        return results

    def size(self) -> int:
        """Get the number of indexed chunks."""
        return len(self.entries)
