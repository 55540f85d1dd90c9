"""Embedding providers for chunks and queries.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic hashing embedder when no key is present.
"""

import hashlib
import logging
import math
import re
import time
from typing import Protocol

from openai import AsyncOpenAI, OpenAIError

from backend.app.config import Settings
from backend.app.docs.errors import EmbeddingError
from backend.app.utils.metrics import pipeline_metrics

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"[a-z0-9]+")


class Embedder(Protocol):
    """Maps text to a fixed-length vector."""

    dimensions: int

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: If the provider fails or returns an unusable vector
        """
        ...

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts; output order matches input order.

        Raises:
            EmbeddingError: If the provider fails or returns an unusable vector
        """
        ...


class HashingEmbedder:
    """Deterministic bag-of-words embedder (no API key required).

    Each lowercase token is hashed into one of ``dimensions`` buckets and the
    counts are L2-normalized, so texts sharing words end up close together.
    """

    provider = "hashing"

    def __init__(self, dimensions: int = 1536) -> None:
        self.dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        """Embed text by hashing its tokens."""
        vector = [0.0] * self.dimensions
        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:8], "big") % self.dimensions] += 1.0

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed each text in order."""
        return [await self.embed(text) for text in texts]


class OpenAIEmbedder:
    """OpenAI-backed embedder."""

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
    ) -> None:
        """Initialize OpenAI embedder.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Embedding model name
            dimensions: Expected vector length; must match the chunk column
        """
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in one provider call."""
        started = time.perf_counter()
        try:
            response = await self.client.embeddings.create(model=self.model, input=texts)
        except OpenAIError as e:
            latency_ms = (time.perf_counter() - started) * 1000
            pipeline_metrics.record_embedding(self.provider, "error", latency_ms)
            logger.error(f"OpenAI embedding call failed: {e}")
            raise EmbeddingError(f"embedding provider error: {type(e).__name__}") from e

        latency_ms = (time.perf_counter() - started) * 1000
        pipeline_metrics.record_embedding(self.provider, "success", latency_ms)

        if not response.data or len(response.data) != len(texts):
            raise EmbeddingError(
                f"expected {len(texts)} embeddings, got {len(response.data or [])}"
            )

        # The API may return items out of order; index ties them back to inputs
        items = sorted(response.data, key=lambda item: item.index)
        vectors = [list(item.embedding) for item in items]

        for vector in vectors:
            if len(vector) != self.dimensions:
                raise EmbeddingError(
                    f"expected {self.dimensions}-dimensional embedding, got {len(vector)}"
                )

        return vectors


def get_embedder(settings: Settings) -> Embedder:
    """Factory function to get appropriate embedder based on config.

    Returns:
        OpenAIEmbedder if API key is configured, HashingEmbedder otherwise
    """
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI embedder")
        return OpenAIEmbedder(
            api_key=api_key.get_secret_value(),
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
        )

    logger.warning("No OpenAI API key configured, using deterministic hashing embedder")
    return HashingEmbedder(dimensions=settings.embedding_dimensions)
