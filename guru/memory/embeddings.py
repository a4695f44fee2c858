"""
Embedding Service for generating vector representations.

Three interchangeable strategies sit behind one interface:
- hash: deterministic, dependency-free and NOT semantic
- local: sentence-transformers (all-MiniLM-L6-v2, 384 dimensions)
- openai: text-embedding-3 models reduced to 384 dimensions

Model-backed services are wrapped in FallbackEmbeddingService so that
embedding never fails: when the model is unavailable the hash
transform answers instead.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Literal

from .base import EMBEDDING_DIMENSION

logger = logging.getLogger("guru.memory.embeddings")


class EmbeddingService(ABC):
    """Abstract interface for embedding generation."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the dimension of embeddings produced."""
        pass

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        pass

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        return [await self.embed(text) for text in texts]


def text_hash(text: str) -> int:
    """32-bit signed rolling hash of a string, stable across processes."""
    h = 0
    for ch in text:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


class HashEmbeddingService(EmbeddingService):
    """
    Deterministic placeholder embeddings.

    The text is hashed to an integer seed and component i is
    ``sin(seed + i) * 0.5 + 0.5``. Identical texts always produce
    identical vectors, but distances between vectors carry no meaning.
    """

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed_sync(self, text: str) -> list[float]:
        seed = text_hash(text)
        return [math.sin(seed + i) * 0.5 + 0.5 for i in range(self._dimension)]

    async def embed(self, text: str) -> list[float]:
        return self.embed_sync(text)


class OpenAIEmbeddingService(EmbeddingService):
    """
    OpenAI embedding service using text-embedding-3 models.

    Uses the native ``dimensions`` parameter so the output fits the
    store's fixed vector width.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = EMBEDDING_DIMENSION,
    ):
        self.api_key = api_key
        self.model = model
        self._dimension = dimensions
        self._client = None
        logger.info(
            f"OpenAIEmbeddingService initialized: model={model}, dimensions={dimensions}"
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        client = self._get_client()
        response = await client.embeddings.create(
            model=self.model,
            input=text,
            dimensions=self._dimension,
        )
        return response.data[0].embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts in one request."""
        if not texts:
            return []

        client = self._get_client()
        response = await client.embeddings.create(
            model=self.model,
            input=texts,
            dimensions=self._dimension,
        )

        # Sort by index to maintain order
        sorted_data = sorted(response.data, key=lambda x: x.index)
        return [item.embedding for item in sorted_data]


class LocalEmbeddingService(EmbeddingService):
    """
    Local embedding service using sentence-transformers.

    Uses all-MiniLM-L6-v2 by default (384 dimensions, fast, good quality).
    The model is loaded on first use.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = EMBEDDING_DIMENSION
        logger.info(f"LocalEmbeddingService initialized with model: {model_name}")

    @property
    def dimension(self) -> int:
        return self._dimension

    def _get_model(self):
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise RuntimeError(
                    "sentence-transformers not installed. "
                    "Install with: pip install guru-memory[local]"
                )
            self._model = SentenceTransformer(self.model_name)
            self._dimension = self._model.get_sentence_embedding_dimension()
            logger.info(f"Loaded local embedding model: {self.model_name}")
        return self._model

    async def embed(self, text: str) -> list[float]:
        model = self._get_model()
        embedding = model.encode(text, convert_to_numpy=True)
        return embedding.tolist()

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        model = self._get_model()
        embeddings = model.encode(texts, convert_to_numpy=True)
        return embeddings.tolist()


class FallbackEmbeddingService(EmbeddingService):
    """
    Wraps a model-backed service and never fails.

    Any error from the primary service, or a vector of the wrong width,
    is logged and answered with the hash transform instead.
    """

    def __init__(self, primary: EmbeddingService, dimension: int = EMBEDDING_DIMENSION):
        self.primary = primary
        self.fallback = HashEmbeddingService(dimension)

    @property
    def dimension(self) -> int:
        return self.fallback.dimension

    def _accept(self, vector: list[float]) -> bool:
        return vector is not None and len(vector) == self.dimension

    async def embed(self, text: str) -> list[float]:
        try:
            vector = await self.primary.embed(text)
        except Exception as e:
            logger.warning(f"Embedding provider failed, using hash fallback: {e}")
            return self.fallback.embed_sync(text)

        if not self._accept(vector):
            logger.warning(
                f"Embedding provider returned {len(vector or [])} dimensions, "
                f"expected {self.dimension}; using hash fallback"
            )
            return self.fallback.embed_sync(text)
        return list(vector)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        try:
            vectors = await self.primary.embed_batch(texts)
        except Exception as e:
            logger.warning(f"Batch embedding failed, using hash fallback: {e}")
            return [self.fallback.embed_sync(t) for t in texts]

        if len(vectors) != len(texts):
            logger.warning("Batch embedding returned the wrong number of vectors")
            return [self.fallback.embed_sync(t) for t in texts]

        return [
            list(v) if self._accept(v) else self.fallback.embed_sync(t)
            for t, v in zip(texts, vectors)
        ]


def create_embedding_service(
    provider: Literal["hash", "local", "openai"] = "hash",
    api_key: str = "",
    model: str = "",
    fallback: bool = True,
) -> EmbeddingService:
    """
    Factory function to create the configured embedding service.

    Args:
        provider: "hash", "local" or "openai"
        api_key: OpenAI API key (required for openai provider)
        model: Model name (optional, uses defaults)
        fallback: Wrap model-backed providers in the hash fallback

    Returns:
        Configured EmbeddingService instance
    """
    if provider == "hash":
        return HashEmbeddingService()

    if provider == "openai":
        if not api_key:
            raise ValueError("OpenAI API key required for openai embedding provider")
        service = OpenAIEmbeddingService(
            api_key=api_key,
            model=model or "text-embedding-3-small",
        )
    elif provider == "local":
        service = LocalEmbeddingService(model_name=model or "all-MiniLM-L6-v2")
    else:
        raise ValueError(f"Unknown embedding provider: {provider}")

    return FallbackEmbeddingService(service) if fallback else service
