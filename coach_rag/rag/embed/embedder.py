"""Query embedding clients.

The embedding model is a black-box collaborator. Clients fail closed:
any error surfaces as ``CollaboratorFailure`` so the retriever can skip
the vector strategy for that sub-query.
"""

from typing import Protocol

from loguru import logger
from openai import AsyncOpenAI

from coach_rag.config.settings import settings
from coach_rag.rag.cache import BoundedCache
from coach_rag.rag.errors import CollaboratorFailure

EMBEDDING_STRATEGY_NAME = "embedding"


class EmbeddingClient(Protocol):
    async def embed(self, text: str) -> list[float]: ...


class OpenAIEmbeddingClient:
    """Embeds query text with an OpenAI embedding model."""

    def __init__(
        self,
        model: str | None = None,
        dimension: int | None = None,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize client.

        Args:
            model: Embedding model name (defaults to settings)
            dimension: Expected vector dimension (defaults to settings)
            client: Optional preconfigured AsyncOpenAI client
        """
        self.model = model or settings.embedding_model
        self.dimension = dimension or settings.embedding_dim
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.openai_api_key:
                raise CollaboratorFailure(
                    EMBEDDING_STRATEGY_NAME,
                    "OPENAI_API_KEY not set. Query embeddings require an OpenAI API key.",
                )
            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
            logger.info(f"Initialized OpenAIEmbeddingClient with model={self.model}")
        return self._client

    async def embed(self, text: str) -> list[float]:
        """Embed a single query string.

        Args:
            text: Query text to embed

        Returns:
            Embedding vector

        Raises:
            CollaboratorFailure: If the API call fails or the dimension is wrong
        """
        if not text.strip():
            raise CollaboratorFailure(EMBEDDING_STRATEGY_NAME, "Cannot embed empty text")

        client = self._get_client()
        try:
            response = await client.embeddings.create(model=self.model, input=[text])
        except Exception as e:
            raise CollaboratorFailure(EMBEDDING_STRATEGY_NAME, f"Failed to generate query embedding: {e}") from e

        embedding = response.data[0].embedding
        if len(embedding) != self.dimension:
            raise CollaboratorFailure(
                EMBEDDING_STRATEGY_NAME,
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(embedding)}",
            )
        return embedding


class CachedEmbeddingClient:
    """Wraps an embedding client with a bounded drop-oldest cache."""

    def __init__(self, inner: EmbeddingClient, cache: BoundedCache[str, list[float]]):
        self.inner = inner
        self.cache = cache

    async def embed(self, text: str) -> list[float]:
        cached = self.cache.get(text)
        if cached is not None:
            return cached
        vector = await self.inner.embed(text)
        self.cache.put(text, vector)
        return vector


class UnavailableEmbeddingClient:
    """Embedding client for offline runs; every call fails closed."""

    async def embed(self, text: str) -> list[float]:
        raise CollaboratorFailure(EMBEDDING_STRATEGY_NAME, "No embedding model configured")
