"""Tests for the traditional Query Pipeline."""

import pytest
import pytest_asyncio

from conftest import DIM, EXPLAIN, RELATED, RERANK, REWRITE, FakeLLM, HashingEmbeddingService
from ragent.common.cache import TTLCache
from ragent.common.embedding_gateway import EmbeddingGateway
from ragent.common.errors import RetrievalUnavailable
from ragent.common.schemas import Query, QueryFilters, QueryOptions, RawDocument
from ragent.ingest.processor import DocumentProcessor
from ragent.retriever.pipeline import QueryPipeline, calculate_confidence
from ragent.store.vector_store import InMemoryVectorStore


CORPUS = [
    RawDocument(
        id="rag", title="RAG Basics", source="ai-research", category="ai",
        content="RAG retrieval augmented generation grounds language model answers in retrieved documents.",
    ),
    RawDocument(
        id="vectors", title="Vector Databases", source="db-weekly", category="databases",
        content="Vector databases index embeddings for fast similarity search over documents.",
    ),
    RawDocument(
        id="cooking", title="Sourdough", source="kitchen", category="food",
        content="Sourdough bread needs a starter, flour, water, salt and patience.",
    ),
]


class Harness:
    def __init__(self, llm=None, service=None):
        self.llm = llm or FakeLLM()
        self.service = service or HashingEmbeddingService()
        self.gateway = EmbeddingGateway(self.service, dimension=DIM, timeout=5.0, seed=7)
        self.store = InMemoryVectorStore(dimension=DIM)
        self.pipeline = QueryPipeline(self.store, self.gateway, self.llm, cache=TTLCache(ttl=300))
        self.store.add_listener(self.pipeline.invalidate)

    async def ingest(self, raws=CORPUS):
        processor = DocumentProcessor(FakeLLM(), self.gateway)
        for raw in raws:
            await self.store.upsert(await processor.process(raw))


@pytest_asyncio.fixture
async def harness():
    h = Harness()
    await h.ingest()
    return h


class TestCalculateConfidence:
    def test_empty(self):
        assert calculate_confidence([]) == 0.0

    @pytest.mark.asyncio
    async def test_volume_and_diversity(self, harness):
        docs = harness.store.documents()
        # 3 docs from 3 sources: 0.3 + 0.15 + 0.2
        assert calculate_confidence(docs) == pytest.approx(0.65)
        assert calculate_confidence(docs[:1]) == pytest.approx(0.35)


class TestSearch:
    @pytest.mark.asyncio
    async def test_most_similar_first(self, harness):
        response = await harness.pipeline.search(
            Query(query="retrieval augmented generation", options=QueryOptions(top_k=2))
        )

        assert response.results[0].id == "rag"
        assert len(response.results) <= 2
        assert response.total_results >= len(response.results)
        assert response.sources[0] == "ai-research"
        assert response.explanation == "Results ranked by semantic similarity to the query."
        assert response.related_queries
        assert harness.pipeline.cache_hits == 0
        assert not response.degraded

    @pytest.mark.asyncio
    async def test_filter_matching_nothing(self, harness):
        response = await harness.pipeline.search(
            Query(query="What is RAG?", filters=QueryFilters(category=["nonexistent"]))
        )

        assert response.results == []
        assert response.total_results == 0
        assert response.confidence == 0.0
        assert response.sources == []
        assert response.explanation == "No documents matched the query."

    @pytest.mark.asyncio
    async def test_category_filter(self, harness):
        response = await harness.pipeline.search(
            Query(query="documents", filters=QueryFilters(category=["databases"]))
        )
        assert [d.id for d in response.results] == ["vectors"]

    @pytest.mark.asyncio
    async def test_rewritten_query_is_embedded(self, harness):
        harness.llm.responses[REWRITE] = "sourdough bread starter"
        response = await harness.pipeline.search(Query(query="How do I bake?"))
        assert response.results[0].id == "cooking"

    @pytest.mark.asyncio
    async def test_rerank_reorders(self, harness):
        harness.llm.responses[RERANK] = '["cooking"]'
        response = await harness.pipeline.search(
            Query(query="retrieval augmented generation", options=QueryOptions(rerank=True))
        )
        assert response.results[0].id == "cooking"

    @pytest.mark.asyncio
    async def test_model_extras_used(self, harness):
        harness.llm.responses[EXPLAIN] = "These cover RAG."
        harness.llm.responses[RELATED] = '["RAG evaluation", "RAG vs fine-tuning"]'
        response = await harness.pipeline.search(Query(query="What is RAG?"))
        assert response.explanation == "These cover RAG."
        assert response.related_queries == ["RAG evaluation", "RAG vs fine-tuning"]

    @pytest.mark.asyncio
    async def test_embedding_failure_is_retrieval_unavailable(self):
        from conftest import FailingEmbeddingService
        h = Harness(service=FailingEmbeddingService())
        with pytest.raises(RetrievalUnavailable):
            await h.pipeline.search(Query(query="What is RAG?"))


class TestCache:
    @pytest.mark.asyncio
    async def test_identical_query_served_from_cache(self, harness):
        query = Query(query="What is RAG?")
        first = await harness.pipeline.search(query)
        second = await harness.pipeline.search(Query(query="What is RAG?"))

        assert harness.pipeline.cache_hits == 1
        assert second.model_dump(exclude={"processing_time"}) == first.model_dump(exclude={"processing_time"})

    @pytest.mark.asyncio
    async def test_options_are_part_of_key(self, harness):
        await harness.pipeline.search(Query(query="What is RAG?"))
        await harness.pipeline.search(Query(query="What is RAG?", options=QueryOptions(top_k=1)))
        assert harness.pipeline.cache_hits == 0

    @pytest.mark.asyncio
    async def test_cached_copy_isolated_from_caller(self, harness):
        first = await harness.pipeline.search(Query(query="What is RAG?"))
        first.results.clear()
        second = await harness.pipeline.search(Query(query="What is RAG?"))
        assert second.results

    @pytest.mark.asyncio
    async def test_upsert_invalidates(self, harness):
        await harness.pipeline.search(Query(query="What is RAG?"))
        await harness.ingest([RawDocument(
            id="rag-2", title="RAG Again", source="ai-research", content="More about RAG retrieval.",
        )])

        response = await harness.pipeline.search(Query(query="What is RAG?"))

        assert harness.pipeline.cache_hits == 0
        assert "rag-2" in {d.id for d in response.results}
        assert len(harness.pipeline.cache) == 1


class TestSuggestions:
    @pytest.mark.asyncio
    async def test_fallback_suggestions(self, harness):
        suggestions = await harness.pipeline.suggestions("vector databases")
        assert suggestions[0] == "What is vector?"

    @pytest.mark.asyncio
    async def test_model_suggestions(self, harness):
        harness.llm.responses[RELATED] = '["vector index types"]'
        assert await harness.pipeline.suggestions("vector databases") == ["vector index types"]
