"""Vector retriever ranking contract and unranked fallback."""

from unittest.mock import MagicMock

import pytest

from coachbot.src.core.errors import EmbeddingUnavailable, RetrievalFailed
from coachbot.src.core.models import DocumentChunk, DocumentMetadata, EmbeddedDocument, RetrievalFilters
from coachbot.src.core.retriever import VectorRetriever, distance_to_similarity

FILTERS = RetrievalFilters(coach_id="keto")


def _row(document_id, distance):
    return {"document_id": document_id, "content": f"content {document_id}", "coach_id": "keto", "title": document_id, "_distance": distance}


@pytest.fixture
def store():
    return MagicMock()


@pytest.fixture
def mock_gateway():
    gateway = MagicMock()
    gateway.embed.return_value = [0.1, 0.2, 0.3]
    return gateway


class TestSimilarity:
    def test_clamped_to_unit_interval(self):
        assert distance_to_similarity(0.0) == 1.0
        assert distance_to_similarity(0.25) == 0.75
        assert distance_to_similarity(1.6) == 0.0
        assert distance_to_similarity(-0.1) == 1.0


class TestSearch:
    def test_threshold_sort_and_limit(self, store, mock_gateway):
        store.vector_search.return_value = [_row("a", 0.5), _row("b", 0.05), _row("c", 0.2), _row("d", 0.9)]
        retriever = VectorRetriever(store, mock_gateway, threshold=0.7, limit=10)

        results = retriever.search([0.1, 0.2, 0.3], FILTERS)

        assert [r.document_id for r in results] == ["b", "c"]
        assert [r.similarity_score for r in results] == pytest.approx([0.95, 0.8])
        assert not any(r.is_fallback for r in results)

    def test_limit_truncates(self, store, mock_gateway):
        store.vector_search.return_value = [_row("a", 0.1), _row("b", 0.05), _row("c", 0.2)]
        retriever = VectorRetriever(store, mock_gateway, threshold=0.0, limit=2)

        assert [r.document_id for r in retriever.search([0.1], FILTERS)] == ["b", "a"]

    def test_filters_reach_the_store(self, store, mock_gateway):
        store.vector_search.return_value = []
        VectorRetriever(store, mock_gateway).search([0.1], RetrievalFilters(coach_id="keto", user_id="u1"))
        where = store.vector_search.call_args.kwargs["where"]
        assert "coach_id = 'keto'" in where
        assert "user_id = 'u1'" in where

    def test_store_error_propagates(self, store, mock_gateway):
        store.vector_search.side_effect = RetrievalFailed("down")
        with pytest.raises(RetrievalFailed):
            VectorRetriever(store, mock_gateway).search([0.1], FILTERS)


class TestRetrieveFallback:
    @pytest.mark.asyncio
    async def test_embedding_failure_uses_unranked_fallback(self, store, mock_gateway):
        mock_gateway.embed.side_effect = EmbeddingUnavailable("provider down")
        store.scan.return_value = [_row("x", 0.0), _row("y", 0.0), _row("z", 0.0), _row("w", 0.0)]
        retriever = VectorRetriever(store, mock_gateway, fallback_limit=3, fallback_score=0.7)

        results = await retriever.retrieve("how do I start keto", FILTERS)

        assert len(results) == 3
        assert all(r.is_fallback for r in results)
        assert all(r.similarity_score == 0.7 for r in results)
        store.vector_search.assert_not_called()
        assert "coach_id = 'keto'" in store.scan.call_args.kwargs["where"]

    @pytest.mark.asyncio
    async def test_search_failure_uses_unranked_fallback(self, store, mock_gateway):
        store.vector_search.side_effect = RetrievalFailed("index corrupt")
        store.scan.return_value = [_row("x", 0.0)]
        retriever = VectorRetriever(store, mock_gateway)

        results = await retriever.retrieve("electrolytes", FILTERS)

        assert [r.document_id for r in results] == ["x"]
        assert results[0].is_fallback

    @pytest.mark.asyncio
    async def test_fallback_failure_yields_empty(self, store, mock_gateway):
        mock_gateway.embed.side_effect = EmbeddingUnavailable("provider down")
        store.scan.side_effect = RetrievalFailed("also down")

        assert await VectorRetriever(store, mock_gateway).retrieve("anything", FILTERS) == []


class TestAgainstLanceDB:
    @pytest.mark.asyncio
    async def test_exact_text_ranks_first(self, vector_store, gateway):
        texts = {
            "keto#0": "Electrolytes like sodium and magnesium ease keto flu symptoms.",
            "keto#1": "Intermittent fasting pairs well with a ketogenic diet.",
            "keto#2": "Track net carbs and keep them under twenty grams daily.",
        }
        docs = []
        for document_id, text in texts.items():
            chunk = DocumentChunk(content=text, source_id="keto", chunk_index=int(document_id[-1]), total_chunks=3, start_char=0, end_char=len(text))
            docs.append(EmbeddedDocument(document_id=document_id, chunk=chunk, vector=gateway.embed(text), metadata=DocumentMetadata(coach_id="keto")))
        vector_store.add_documents(docs)

        retriever = VectorRetriever(vector_store, gateway, threshold=0.9)
        results = await retriever.retrieve(texts["keto#1"], FILTERS)

        assert results[0].document_id == "keto#1"
        assert results[0].similarity_score == pytest.approx(1.0, abs=1e-3)
        assert all(r.similarity_score >= 0.9 for r in results)
