"""
CoachBot - Embedding Gateway
=============================
Thin contract around an external embedding model.

``embed(text)`` → one vector, ``embed_batch(texts)`` → one vector per
text, in order.  Any provider error surfaces as ``EmbeddingUnavailable``;
no retries happen here.

The wrapped model only has to satisfy the LangChain ``Embeddings``
shape (``embed_query`` / ``embed_documents``), so tests can inject a
deterministic fake and production uses ``GoogleGenerativeAIEmbeddings``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from coachbot.config.settings import settings
from coachbot.src.core.errors import EmbeddingUnavailable, classify_provider_error
from coachbot.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


def create_embedder() -> Embedder:
    """Build the production Gemini embedder from settings."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    return GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())


class EmbeddingGateway:
    """
    Single + batch embedding with fixed dimensionality checks.

    Parameters
    ----------
    embedder
        Any ``Embedder``.  Defaults to :func:`create_embedder`.
    batch_size
        Texts per provider call in :meth:`embed_batch`.
    model_name
        Recorded in document metadata next to the dimensionality.
    """

    __slots__ = ("_embedder", "_batch_size", "model_name", "dimensions")

    def __init__(self, embedder: Embedder | None = None, batch_size: int | None = None, model_name: str | None = None) -> None:
        self._embedder = embedder or create_embedder()
        self._batch_size = batch_size or settings.EMBED_BATCH_SIZE
        self.model_name = model_name or settings.EMBEDDING_MODEL
        self.dimensions: int | None = None


    def embed(self, text: str) -> list[float]:
        """Embed a single query text."""
        try:
            vector = list(self._embedder.embed_query(text))
        except Exception as exc:
            logger.error("[EMBED] Query embedding failed: %s", exc)
            raise EmbeddingUnavailable(f"Embedding provider failed: {type(exc).__name__}", classify_provider_error(exc)) from exc

        self._check_dimensions(vector)
        return vector


    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in batches of ``batch_size``; order is preserved."""
        vectors: list[list[float]] = []
        for i in range(0, len(texts), self._batch_size):
            batch = texts[i : i + self._batch_size]
            try:
                batch_vectors = self._embedder.embed_documents(batch)
            except Exception as exc:
                logger.error("[EMBED] Batch %d–%d failed: %s", i, i + len(batch) - 1, exc)
                raise EmbeddingUnavailable(f"Embedding provider failed: {type(exc).__name__}", classify_provider_error(exc)) from exc

            if len(batch_vectors) != len(batch):
                raise EmbeddingUnavailable(f"Provider returned {len(batch_vectors)} vectors for {len(batch)} texts.")
            for vector in batch_vectors:
                self._check_dimensions(vector)
                vectors.append(list(vector))

        logger.debug("[EMBED] Embedded %d text(s) in batches of %d.", len(texts), self._batch_size)
        return vectors


    def _check_dimensions(self, vector: list[float]) -> None:
        if self.dimensions is None:
            self.dimensions = len(vector)
        elif len(vector) != self.dimensions:
            raise EmbeddingUnavailable(f"Embedding dimensionality changed: expected {self.dimensions}, got {len(vector)}.")
