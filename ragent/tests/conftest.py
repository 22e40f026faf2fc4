"""Shared fakes for the Language Model and Embedding services."""

import hashlib
import re

import numpy as np
import pytest

from ragent.common.errors import ServiceUnavailable

DIM = 64


# Substrings that identify each prompt the engine sends
CHUNK = "Split the content below into semantically complete chunks"
KEYWORDS = "most important keywords"
ENHANCE = "provide enriched metadata"
REWRITE = "Rewrite the query below"
RERANK = "Rank the documents below"
EXPLAIN = "one-sentence explanation"
RELATED = "Suggest 3-5 related search queries"
PLAN = "Design a retrieval strategy"
FOLLOW_UP = "generate follow-up search queries"
ANALYZE = "Assess the quality and completeness"
SYNTHESIZE = "Answer the user's query using only"


class FakeLLM:
    """
    Scripted Language Model Service.

    ``responses`` maps a prompt marker to a string, an exception instance, or
    a callable taking the prompt. Prompts with no scripted response fail with
    ServiceUnavailable, exercising every fallback path.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    @property
    def is_available(self):
        return True

    def prompts(self, marker):
        return [p for p, _ in self.calls if marker in p]

    async def acomplete(self, prompt, temperature=0.3, *, system=None, max_tokens=None):
        self.calls.append((prompt, temperature))
        for marker, response in self.responses.items():
            if marker in prompt:
                if isinstance(response, Exception):
                    raise response
                return response(prompt) if callable(response) else response
        raise ServiceUnavailable("no scripted response")


def _bucket(token):
    return int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % DIM


class HashingEmbeddingService:
    """Deterministic bag-of-words embeddings; shared words mean similar vectors."""

    def __init__(self, dimension=DIM):
        self.dimension = dimension
        self.calls = 0

    @property
    def is_available(self):
        return True

    def embed_single(self, text):
        self.calls += 1
        vector = np.zeros(self.dimension)
        for token in re.findall(r"\w+", text.lower()):
            vector[_bucket(token) % self.dimension] += 1.0
        return vector.tolist()


class FailingEmbeddingService:
    """Embedding Service that is always unreachable."""

    dimension = DIM
    is_available = True

    def embed_single(self, text):
        raise ConnectionError("embedding service unreachable")


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def embedding_service():
    return HashingEmbeddingService()


@pytest.fixture
def gateway(embedding_service):
    from ragent.common.embedding_gateway import EmbeddingGateway
    return EmbeddingGateway(embedding_service, dimension=DIM, timeout=5.0, seed=7)


@pytest.fixture
def make_engine():
    """Factory for a fully wired engine over fake services."""
    from ragent.agentic.orchestrator import AgenticOrchestrator
    from ragent.agentic.roles import Planner, Reasoner, Retriever
    from ragent.common.cache import TTLCache
    from ragent.common.embedding_gateway import EmbeddingGateway
    from ragent.engine import RagEngine
    from ragent.ingest.processor import DocumentProcessor
    from ragent.retriever.pipeline import QueryPipeline
    from ragent.store.vector_store import InMemoryVectorStore

    def _make(llm=None, service=None, invalidate_on_upsert=True):
        llm = llm or FakeLLM()
        service = service or HashingEmbeddingService()
        gw = EmbeddingGateway(service, dimension=DIM, timeout=5.0, seed=7)
        store = InMemoryVectorStore(dimension=DIM)
        return RagEngine(
            store=store,
            gateway=gw,
            processor=DocumentProcessor(llm, gw, max_concurrency=4),
            pipeline=QueryPipeline(store, gw, llm, cache=TTLCache(ttl=300)),
            orchestrator=AgenticOrchestrator(
                Planner(llm), Retriever(llm, gw, store), Reasoner(llm),
            ),
            invalidate_on_upsert=invalidate_on_upsert,
        )

    return _make


@pytest.fixture
def rag_basics():
    from ragent.common.schemas import RawDocument
    return RawDocument(
        id="rag-basics",
        title="RAG Basics",
        content=(
            "RAG (retrieval augmented generation) combines retrieval with generation. "
            "A RAG system embeds documents, searches them by similarity, and passes "
            "the retrieved passages to a language model to ground its answer."
        ),
        summary="An introduction to RAG",
        tags=["rag", "ai"],
        category="ai",
        source="ai-research",
    )
