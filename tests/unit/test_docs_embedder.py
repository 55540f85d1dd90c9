"""Unit tests for embedding providers.

No test makes a real network call.
"""

import math
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from openai import OpenAIError
from pydantic import SecretStr

from backend.app.config import Settings
from backend.app.docs.embedder import HashingEmbedder, OpenAIEmbedder, get_embedder
from backend.app.docs.errors import EmbeddingError


def _embedding_response(*items: tuple[int, list[float]]) -> SimpleNamespace:
    return SimpleNamespace(
        data=[SimpleNamespace(index=index, embedding=vector) for index, vector in items]
    )


@pytest.mark.asyncio
async def test_hashing_embedder_is_deterministic_and_normalized() -> None:
    embedder = HashingEmbedder(dimensions=32)

    first = await embedder.embed("Engine fire on ground")
    second = await embedder.embed("Engine fire on ground")

    assert first == second
    assert len(first) == 32
    assert math.isclose(math.sqrt(sum(v * v for v in first)), 1.0)


@pytest.mark.asyncio
async def test_hashing_embedder_similar_texts_are_closer() -> None:
    embedder = HashingEmbedder(dimensions=256)

    query = await embedder.embed("engine fire procedure")
    related = await embedder.embed("procedure for an engine fire on ground")
    unrelated = await embedder.embed("cabin pressure controller fault")

    assert math.dist(query, related) < math.dist(query, unrelated)


@pytest.mark.asyncio
async def test_hashing_embedder_empty_text_is_zero_vector() -> None:
    vector = await HashingEmbedder(dimensions=8).embed("   ")

    assert vector == [0.0] * 8


@pytest.mark.asyncio
async def test_openai_embedder_orders_by_index() -> None:
    embedder = OpenAIEmbedder(api_key="test-key", dimensions=2)
    embedder.client = AsyncMock()
    embedder.client.embeddings.create = AsyncMock(
        return_value=_embedding_response((1, [0.0, 1.0]), (0, [1.0, 0.0]))
    )

    vectors = await embedder.embed_many(["first", "second"])

    assert vectors == [[1.0, 0.0], [0.0, 1.0]]
    embedder.client.embeddings.create.assert_awaited_once_with(
        model="text-embedding-3-small", input=["first", "second"]
    )


@pytest.mark.asyncio
async def test_openai_embedder_wraps_provider_errors() -> None:
    embedder = OpenAIEmbedder(api_key="test-key", dimensions=2)
    embedder.client = AsyncMock()
    embedder.client.embeddings.create = AsyncMock(side_effect=OpenAIError("rate limited"))

    with pytest.raises(EmbeddingError):
        await embedder.embed("text")


@pytest.mark.asyncio
async def test_openai_embedder_rejects_wrong_dimensions() -> None:
    embedder = OpenAIEmbedder(api_key="test-key", dimensions=3)
    embedder.client = AsyncMock()
    embedder.client.embeddings.create = AsyncMock(return_value=_embedding_response((0, [1.0, 0.0])))

    with pytest.raises(EmbeddingError, match="3-dimensional"):
        await embedder.embed("text")


@pytest.mark.asyncio
async def test_openai_embedder_rejects_missing_items() -> None:
    embedder = OpenAIEmbedder(api_key="test-key", dimensions=2)
    embedder.client = AsyncMock()
    embedder.client.embeddings.create = AsyncMock(return_value=_embedding_response((0, [1.0, 0.0])))

    with pytest.raises(EmbeddingError):
        await embedder.embed_many(["a", "b"])


def test_get_embedder_without_key_uses_hashing() -> None:
    embedder = get_embedder(Settings(openai_api_key=None, embedding_dimensions=16))

    assert isinstance(embedder, HashingEmbedder)
    assert embedder.dimensions == 16


def test_get_embedder_with_key_uses_openai() -> None:
    embedder = get_embedder(Settings(openai_api_key=SecretStr("sk-test")))

    assert isinstance(embedder, OpenAIEmbedder)
    assert embedder.dimensions == 1536
