"""Tests for query embeddings."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from botsmith.rag.embeddings import EmbeddingGenerator


def embedding_client(vector: list[float]) -> MagicMock:
    client = MagicMock()
    client.embeddings.create = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(embedding=vector)])
    )
    return client


@pytest.mark.asyncio
async def test_equivalent_queries_share_one_call() -> None:
    """Test normalized queries hit the cache."""
    client = embedding_client([0.1, 0.2, 0.3])
    generator = EmbeddingGenerator(api_key="k", client=client)

    first = await generator.generate("  Rust   Developers ")
    second = await generator.generate("rust developers")

    assert first == second == [0.1, 0.2, 0.3]
    client.embeddings.create.assert_awaited_once_with(
        model="text-embedding-3-small", input="Rust   Developers"
    )


@pytest.mark.asyncio
async def test_blank_query_rejected() -> None:
    """Test a blank query never reaches the API."""
    client = embedding_client([0.1])
    generator = EmbeddingGenerator(api_key="k", client=client)

    with pytest.raises(ValueError):
        await generator.generate("   ")

    client.embeddings.create.assert_not_awaited()
