"""
Query Pipeline

Traditional retrieval:
    cache -> rewrite -> embed -> vector search -> (rerank) -> explain -> cache

Every stage after the query embedding is best-effort. The query embedding
itself is not: a fallback vector would rank documents at random, so an
unreachable Embedding Service surfaces as RetrievalUnavailable.
"""

import asyncio
import logging
import time
from typing import List, Optional

from ..common.cache import TTLCache
from ..common.embedding_gateway import EmbeddingGateway
from ..common.errors import RetrievalUnavailable
from ..common.schemas import Document, Query, QueryMode, Response
from ..store.vector_store import ScoredDocument, VectorStore
from .explainer import Explainer
from .query_processor import QueryProcessor
from .reranker import Reranker

logger = logging.getLogger("ragent.retriever.pipeline")


def calculate_confidence(documents: List[Document]) -> float:
    """
    Heuristic confidence from result volume and source diversity.

    0 for no results; otherwise 0.3 base, up to 0.5 for volume (saturating at
    10 results), and 0.2 when more than one source contributed.
    """
    if not documents:
        return 0.0
    volume = min(len(documents) / 10, 1.0) * 0.5
    diversity = 0.2 if len({d.metadata.source for d in documents}) > 1 else 0.0
    return min(volume + 0.3 + diversity, 1.0)


class QueryPipeline:
    """Traditional-mode search over a Vector Store."""

    def __init__(
        self,
        store: VectorStore,
        gateway: EmbeddingGateway,
        llm_client,
        cache: Optional[TTLCache] = None,
        query_processor: Optional[QueryProcessor] = None,
        reranker: Optional[Reranker] = None,
        explainer: Optional[Explainer] = None,
    ):
        self._store = store
        self._gateway = gateway
        self._cache = cache if cache is not None else TTLCache()
        self._processor = query_processor or QueryProcessor(llm_client)
        self._reranker = reranker or Reranker(llm_client)
        self._explainer = explainer or Explainer(llm_client)
        # Bumped on every invalidation; a search started before a write is not cached
        self._generation = 0
        self.cache_hits = 0

    @property
    def cache(self) -> TTLCache:
        return self._cache

    def invalidate(self, document_id: Optional[str] = None) -> None:
        """Drop cached responses; any write may change any ranking."""
        if len(self._cache):
            logger.debug("Query cache invalidated by write to %s", document_id)
        self._cache.clear()
        self._generation += 1

    async def search(self, query: Query) -> Response:
        """
        Run a traditional search.

        Raises:
            RetrievalUnavailable: the query embedding could not be computed
        """
        start = time.perf_counter()
        options = query.options
        generation = self._generation

        key = query.cache_key()
        cached = self._cache.get(key)
        if cached is not None:
            self.cache_hits += 1
            logger.info("Query cache hit: %r", query.query)
            return cached.model_copy(
                update={"processing_time": time.perf_counter() - start},
                deep=True,
            )

        parsed = await self._processor.process(query)

        embedding = await self._gateway.embed(parsed.expanded)
        if embedding.degraded:
            logger.error("Query embedding unavailable for %r", query.query)
            raise RetrievalUnavailable()

        filters = query.filters if query.filters.is_active else None
        candidates: List[ScoredDocument] = self._store.search(
            embedding.vector, filters=filters, top_k=options.top_k, threshold=options.threshold,
        )

        if options.rerank:
            candidates = await self._reranker.rerank(query.query, candidates)

        ranked = [c.document for c in candidates]
        results = ranked[:options.top_k]

        explanation, related = await asyncio.gather(
            self._explainer.explain(query.query, ranked, parsed.language),
            self._explainer.related_queries(query.query, parsed.language),
        )
        if related is None:
            related = self._processor.suggest_related(parsed)

        response = Response(
            results=results,
            query=query.query,
            total_results=len(candidates),
            processing_time=time.perf_counter() - start,
            confidence=calculate_confidence(ranked),
            explanation=explanation,
            related_queries=related,
            sources=list(dict.fromkeys(d.metadata.source for d in results)),
            mode=QueryMode.TRADITIONAL,
            degraded=any(d.degraded for d in results),
        )

        if generation == self._generation:
            self._cache.set(key, response.model_copy(deep=True))
        logger.info(
            "Search complete: %d results for %r (%.3fs)",
            len(results), query.query, response.processing_time,
        )
        return response

    async def suggestions(self, text: str, language: Optional[str] = None) -> List[str]:
        """Related-query suggestions without running a search."""
        parsed = self._processor.parse(text, language=language)
        related = await self._explainer.related_queries(text, parsed.language)
        return related if related is not None else self._processor.suggest_related(parsed)
