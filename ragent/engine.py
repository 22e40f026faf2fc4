"""
RagEngine

Composition root: wires the Embedding Gateway, Document Processor, Vector
Store, Query Pipeline and Agentic Orchestrator into one explicitly
constructed engine value. Nothing here is process-global; build as many
isolated engines as needed with ``build_engine``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .agentic.orchestrator import AgenticOrchestrator, AgenticResult
from .agentic.roles import Planner, Reasoner, Retriever
from .common.cache import TTLCache
from .common.config import RagentConfig, load_config
from .common.embedding_gateway import EmbeddingGateway
from .common.embedding_service import create_embedding_service
from .common.llm_client import create_llm_client
from .common.schemas import Document, Query, QueryMode, RawDocument, Response
from .ingest.processor import DocumentProcessor, IngestReport
from .retriever.pipeline import QueryPipeline
from .store.vector_store import InMemoryVectorStore, VectorStore

logger = logging.getLogger("ragent.engine")

AGENTIC_FALLBACK_NOTE = "[Agentic mode unavailable, showing traditional results]"


class RagEngine:
    """Ingestion and search entry points for one corpus."""

    def __init__(
        self,
        store: VectorStore,
        gateway: EmbeddingGateway,
        processor: DocumentProcessor,
        pipeline: QueryPipeline,
        orchestrator: AgenticOrchestrator,
        default_top_k: int = 10,
        invalidate_on_upsert: bool = True,
    ):
        self.store = store
        self.gateway = gateway
        self.processor = processor
        self.pipeline = pipeline
        self.orchestrator = orchestrator
        self._default_top_k = default_top_k

        if invalidate_on_upsert:
            store.add_listener(pipeline.invalidate)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(self, raw: RawDocument) -> Document:
        """
        Process and store one document.

        Raises:
            ChunkingError: raw content is empty
        """
        document = await self.processor.process(raw)
        await self.store.upsert(document)
        return document

    async def ingest_batch(self, raws: List[RawDocument]) -> IngestReport:
        """Process and store several documents; failures are reported per document."""
        report = await self.processor.process_batch(raws)
        for document in report.documents:
            await self.store.upsert(document)
        logger.info("Batch ingest: %d stored, %d failed", report.succeeded, report.failed)
        return report

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, query: Query) -> Response:
        """
        Search in the mode selected by ``query.options.mode``.

        A failed agentic run transparently falls back to traditional mode.

        Raises:
            RetrievalUnavailable: the Embedding Service is unreachable
        """
        query = self._apply_defaults(query)
        logger.info("Search (%s): %r", query.options.mode.value, query.query)

        if query.options.mode == QueryMode.AGENTIC:
            return await self._agentic_search(query)
        return await self.pipeline.search(query)

    async def suggestions(self, text: str, language: Optional[str] = None) -> List[str]:
        return await self.pipeline.suggestions(text, language=language)

    async def _agentic_search(self, query: Query) -> Response:
        try:
            result = await self.orchestrator.run(query)
        except Exception as e:
            logger.error("Agentic run raised: %s", e, exc_info=True)
            result = None

        if result is None or result.failed:
            logger.warning("Falling back to traditional search for %r", query.query)
            response = await self.pipeline.search(query.with_mode(QueryMode.TRADITIONAL))
            return response.model_copy(update={
                "explanation": f"{AGENTIC_FALLBACK_NOTE} {response.explanation}",
                "degraded": True,
            })

        return self._agentic_response(query, result)

    def _agentic_response(self, query: Query, result: AgenticResult) -> Response:
        documents = [d for d in (self.store.get(i) for i in result.document_ids) if d is not None]
        return Response(
            results=documents,
            query=query.query,
            total_results=len(result.data.citations),
            processing_time=result.processing_time,
            confidence=result.confidence,
            explanation=result.reasoning,
            related_queries=result.related_queries,
            sources=list(dict.fromkeys(d.metadata.source for d in documents)),
            mode=QueryMode.AGENTIC,
            degraded=result.degraded,
            agentic=result.data,
        )

    def _apply_defaults(self, query: Query) -> Query:
        if "top_k" in query.options.model_fields_set:
            return query
        options = query.options.model_copy(update={"top_k": self._default_top_k})
        return query.model_copy(update={"options": options})

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Read-only counts for operational monitoring."""
        documents = self.store.documents()
        total_chunks = sum(len(d.chunks) for d in documents)
        return {
            "total_documents": len(documents),
            "total_chunks": total_chunks,
            "average_chunks_per_document": total_chunks / len(documents) if documents else 0.0,
            "degraded_documents": sum(1 for d in documents if d.degraded),
            "cache_size": {
                "queries": len(self.pipeline.cache),
                "embeddings": self.gateway.cache_size,
            },
            "query_cache_hits": self.pipeline.cache_hits,
            "degraded_embedding_calls": self.gateway.degraded_calls,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }

    def clear_cache(self) -> None:
        """Drop both the query-response and the embedding cache."""
        self.pipeline.invalidate()
        self.gateway.clear_cache()
        logger.info("Caches cleared")


def build_engine(config: Optional[RagentConfig] = None) -> RagEngine:
    """Construct a fully wired engine from configuration."""
    if config is None:
        config = load_config()

    llm = create_llm_client(config.llm)
    service = create_embedding_service(config.embedding, config.llm)
    if not llm.is_available:
        logger.warning("Language Model Service not configured; model-driven steps will use fallbacks")
    if not service.is_available:
        logger.warning("Embedding Service not configured; searches will be unavailable")

    gateway = EmbeddingGateway(
        service,
        dimension=config.embedding.dimension,
        cache_size=config.embedding.cache_size,
        timeout=config.embedding.timeout,
        max_concurrency=config.engine.max_concurrency,
    )
    store = InMemoryVectorStore(dimension=config.embedding.dimension)
    processor = DocumentProcessor(llm, gateway, max_concurrency=config.engine.max_concurrency)
    pipeline = QueryPipeline(
        store,
        gateway,
        llm,
        cache=TTLCache(ttl=config.cache.query_ttl_seconds, max_size=config.cache.max_queries),
    )
    orchestrator = AgenticOrchestrator(
        Planner(llm),
        Retriever(llm, gateway, store),
        Reasoner(llm),
        max_steps=config.engine.agentic_max_steps,
        time_limit=config.engine.agentic_time_limit,
        max_expansion_rounds=config.engine.max_expansion_rounds,
    )
    return RagEngine(
        store=store,
        gateway=gateway,
        processor=processor,
        pipeline=pipeline,
        orchestrator=orchestrator,
        default_top_k=config.engine.default_top_k,
        invalidate_on_upsert=config.cache.invalidate_on_upsert,
    )
