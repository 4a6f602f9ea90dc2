"""
CoachBot - Vector Retriever
============================
Nearest-chunk lookup over the coach corpus with a degrade path.

``search()``
    Pure ranking contract over a query vector: results sorted by
    ``similarity_score`` descending, nothing below ``threshold``,
    at most ``limit`` rows.  Store errors raise ``RetrievalFailed``.

``retrieve()``
    Async entry point used per chat turn.  Embeds the query, runs
    ``search()`` off the event loop, and on ``EmbeddingUnavailable`` or
    ``RetrievalFailed`` falls back to a bounded, unranked scan scoped to
    the same filters.  Fallback rows carry a fixed nominal score and
    ``is_fallback=True``.  Never raises.

Similarity
----------
LanceDB returns cosine *distance* in ``[0, 2]``; similarity is
``1 - distance`` clamped to ``[0, 1]``.
"""

from __future__ import annotations

import asyncio
import time

from coachbot.config.settings import settings
from coachbot.src.core.embeddings import EmbeddingGateway
from coachbot.src.core.errors import CoachError, EmbeddingUnavailable, RetrievalFailed
from coachbot.src.core.models import RetrievalFilters, RetrievalResult
from coachbot.src.database.vector_store import CoachVectorStore, SearchRow, build_where
from coachbot.src.utils.logger import get_logger

logger = get_logger(__name__)


def distance_to_similarity(distance: float) -> float:
    return min(max(1.0 - float(distance), 0.0), 1.0)


class VectorRetriever:
    """
    Parameters
    ----------
    store
        The ``CoachVectorStore`` holding embedded chunks.
    gateway
        ``EmbeddingGateway`` used to embed query text in :meth:`retrieve`.
    threshold, limit
        Defaults for :meth:`search`.
    fallback_limit, fallback_score
        Size of the unranked degrade set and the nominal score it carries.
    """

    __slots__ = ("_store", "_gateway", "_threshold", "_limit", "_fallback_limit", "_fallback_score")

    def __init__(self, store: CoachVectorStore, gateway: EmbeddingGateway, threshold: float | None = None, limit: int | None = None, fallback_limit: int | None = None, fallback_score: float | None = None) -> None:
        self._store = store
        self._gateway = gateway
        self._threshold = settings.SIMILARITY_THRESHOLD if threshold is None else threshold
        self._limit = limit or settings.SEARCH_RESULTS_LIMIT
        self._fallback_limit = fallback_limit or settings.FALLBACK_RESULTS_LIMIT
        self._fallback_score = settings.FALLBACK_SIMILARITY_SCORE if fallback_score is None else fallback_score


    def search(self, query_vector: list[float], filters: RetrievalFilters, threshold: float | None = None, limit: int | None = None) -> list[RetrievalResult]:
        """
        Rank corpus chunks against *query_vector*.

        Raises
        ------
        RetrievalFailed
            If the store query errors.
        """
        threshold = self._threshold if threshold is None else threshold
        limit = limit or self._limit

        rows = self._store.vector_search(query_vector, where=build_where(filters), limit=limit)
        results = [self._to_result(row, distance_to_similarity(row.get("_distance", 1.0))) for row in rows]
        results = [r for r in results if r.similarity_score >= threshold]
        results.sort(key=lambda r: r.similarity_score, reverse=True)

        logger.debug("[RETRIEVE] %d/%d row(s) passed threshold %.2f.", len(results), len(rows), threshold)
        return results[:limit]


    async def retrieve(self, query_text: str, filters: RetrievalFilters, threshold: float | None = None, limit: int | None = None) -> list[RetrievalResult]:
        """Embed *query_text* and search; degrade to :meth:`fallback` on failure."""
        t_start = time.perf_counter()
        try:
            vector = await asyncio.to_thread(self._gateway.embed, query_text)
            results = await asyncio.to_thread(self.search, vector, filters, threshold, limit)
        except (EmbeddingUnavailable, RetrievalFailed) as exc:
            logger.warning("[RETRIEVE] Vector path unavailable (%s: %s); using unranked fallback.", type(exc).__name__, exc)
            return await asyncio.to_thread(self.fallback, filters)

        elapsed_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RETRIEVE] coach=%s → %d result(s) in %.1fms", filters.coach_id, len(results), elapsed_ms)
        return results


    def fallback(self, filters: RetrievalFilters) -> list[RetrievalResult]:
        """Bounded unranked scan scoped to *filters*.  Returns ``[]`` on error."""
        try:
            rows = self._store.scan(where=build_where(filters), limit=self._fallback_limit)
        except CoachError:
            logger.exception("[RETRIEVE] Fallback scan failed as well; returning no results.")
            return []

        return [self._to_result(row, self._fallback_score, is_fallback=True) for row in rows[: self._fallback_limit]]


    @staticmethod
    def _to_result(row: SearchRow, score: float, is_fallback: bool = False) -> RetrievalResult:
        return RetrievalResult(document_id=str(row.get("document_id", "")), content=str(row.get("content", "")), metadata=CoachVectorStore.row_metadata(row), similarity_score=score, is_fallback=is_fallback)
