"""Embedding gateway: batching, ordering and provider failure mapping."""

from unittest.mock import MagicMock

import pytest

from coachbot.src.core.embeddings import EmbeddingGateway
from coachbot.src.core.errors import EmbeddingUnavailable, FailureKind


class _CountingEmbedder:
    def __init__(self, dims=3):
        self.dims = dims
        self.batches = []

    def embed_documents(self, texts):
        self.batches.append(list(texts))
        return [[float(len(t))] * self.dims for t in texts]

    def embed_query(self, text):
        return [float(len(text))] * self.dims


class TestBatching:
    def test_batches_respect_batch_size(self):
        embedder = _CountingEmbedder()
        gateway = EmbeddingGateway(embedder=embedder, batch_size=2, model_name="m")
        texts = ["a", "bb", "ccc", "dddd", "eeeee"]

        vectors = gateway.embed_batch(texts)

        assert [len(b) for b in embedder.batches] == [2, 2, 1]
        assert [v[0] for v in vectors] == [1.0, 2.0, 3.0, 4.0, 5.0]
        assert gateway.dimensions == 3

    def test_empty_batch_makes_no_calls(self):
        embedder = _CountingEmbedder()
        gateway = EmbeddingGateway(embedder=embedder, batch_size=2, model_name="m")
        assert gateway.embed_batch([]) == []
        assert embedder.batches == []


class TestFailures:
    def test_provider_error_becomes_embedding_unavailable(self):
        embedder = MagicMock()
        embedder.embed_query.side_effect = RuntimeError("429 Too Many Requests")
        gateway = EmbeddingGateway(embedder=embedder, batch_size=4, model_name="m")

        with pytest.raises(EmbeddingUnavailable) as info:
            gateway.embed("hello")
        assert info.value.kind is FailureKind.RATE_LIMITED

    def test_vector_count_mismatch(self):
        embedder = MagicMock()
        embedder.embed_documents.return_value = [[0.1, 0.2]]
        gateway = EmbeddingGateway(embedder=embedder, batch_size=4, model_name="m")

        with pytest.raises(EmbeddingUnavailable):
            gateway.embed_batch(["one", "two"])

    def test_dimensionality_is_fixed_after_first_vector(self):
        embedder = MagicMock()
        embedder.embed_query.side_effect = [[0.1, 0.2, 0.3], [0.1, 0.2]]
        gateway = EmbeddingGateway(embedder=embedder, batch_size=4, model_name="m")

        assert gateway.embed("first") == [0.1, 0.2, 0.3]
        with pytest.raises(EmbeddingUnavailable):
            gateway.embed("second")
