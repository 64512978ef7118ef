"""Tests des fournisseurs d'embeddings."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import Mock

import httpx
import numpy as np
import openai
import pytest

from curator.core.settings import Settings
from curator.domain.errors import ConfigurationError, EmbeddingProviderError
from curator.domain.similarity import cosine_similarity
from curator.infra.embeddings import (
    LocalEmbedder,
    OpenAIEmbedder,
    VoyageEmbedder,
    create_provider,
    truncate_text,
)


def test_truncate_text_respects_budget() -> None:
    assert truncate_text("short", 10) == "short"
    out = truncate_text("a" * 50, 10)
    assert len(out) == 40
    assert out.endswith("...")


def test_vectors_are_normalized_and_deterministic() -> None:
    embedder = LocalEmbedder(dimensions=64)
    first = embedder.embed("Python tutorial for beginners").vector
    again = LocalEmbedder(dimensions=64).embed("Python tutorial for beginners").vector
    assert len(first) == 64
    assert np.linalg.norm(first) == pytest.approx(1.0, abs=1e-6)
    assert first == again


def test_shared_words_are_closer() -> None:
    embedder = LocalEmbedder()
    a, b, c = embedder.embed_batch(
        ["climate summit agreement", "climate agreement signed", "pasta recipe"]
    ).vectors
    assert cosine_similarity(a, b) > cosine_similarity(a, c)


def test_empty_text_gives_zero_vector() -> None:
    vector = LocalEmbedder(dimensions=8).embed("   ").vector
    assert vector == [0.0] * 8


def test_validate() -> None:
    assert LocalEmbedder(dimensions=16).validate() is True


def _openai_client(dims: int = 3) -> Mock:
    client = Mock()
    client.embeddings.create.return_value = SimpleNamespace(
        data=[
            SimpleNamespace(index=1, embedding=[0.0] * dims),
            SimpleNamespace(index=0, embedding=[1.0] * dims),
        ]
    )
    return client


def test_batch_keeps_input_order() -> None:
    client = _openai_client()
    embedder = OpenAIEmbedder(client=client)
    result = embedder.embed_batch(["first", "second"])
    assert result.vectors == [[1.0] * 3, [0.0] * 3]
    assert result.model == "text-embedding-3-small"
    assert embedder.get_dimensions() == 1536
    client.embeddings.create.assert_called_once_with(
        model="text-embedding-3-small", input=["first", "second"]
    )


def test_input_is_truncated() -> None:
    client = _openai_client()
    OpenAIEmbedder(client=client, max_tokens=2).embed_batch(["x" * 100, "y"])
    sent = client.embeddings.create.call_args.kwargs["input"]
    assert sent[0] == "xxxxx..."


def test_sdk_errors_are_wrapped() -> None:
    client = Mock()
    client.embeddings.create.side_effect = openai.OpenAIError("boom")
    embedder = OpenAIEmbedder(client=client)
    with pytest.raises(EmbeddingProviderError):
        embedder.embed_batch(["text"])
    assert embedder.validate() is False


def test_requires_key() -> None:
    with pytest.raises(ConfigurationError):
        OpenAIEmbedder()


def test_posts_to_embeddings_endpoint() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        data = [{"index": i, "embedding": [float(i)] * 4} for i in range(len(body["input"]))]
        return httpx.Response(200, json={"data": data})

    embedder = VoyageEmbedder(
        "vk", client=httpx.Client(transport=httpx.MockTransport(handler))
    )
    result = embedder.embed_batch(["a", "b"])
    assert result.vectors == [[0.0] * 4, [1.0] * 4]
    assert seen[0].url.path == "/v1/embeddings"
    assert seen[0].headers["Authorization"] == "Bearer vk"
    assert embedder.get_dimensions() == 1024


def test_http_error_is_wrapped() -> None:
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    with pytest.raises(EmbeddingProviderError):
        VoyageEmbedder("vk", client=client).embed_batch(["a"])


def test_anthropic_alias_is_voyage() -> None:
    settings = Settings(_env_file=None, VOYAGE_API_KEY="vk")
    assert isinstance(create_provider("anthropic", settings), VoyageEmbedder)
    assert isinstance(create_provider("voyage", settings), VoyageEmbedder)


def test_local() -> None:
    provider = create_provider("local", Settings(_env_file=None, EMBEDDINGS_DIMENSIONS=32))
    assert provider.get_dimensions() == 32


def test_unknown_provider() -> None:
    with pytest.raises(ValueError):
        create_provider("cohere", Settings(_env_file=None))


def test_missing_key() -> None:
    with pytest.raises(ConfigurationError):
        create_provider("openai", Settings(_env_file=None, OPENAI_API_KEY=None))
