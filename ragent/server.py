"""
ragent Server

FastAPI boundary for ingestion and search.

Endpoints:
- GET /health: Health check
- GET /stats: Corpus and cache statistics
- POST /documents: Ingest one document
- POST /documents/batch: Ingest several documents
- DELETE /documents/{document_id}: Remove a document
- POST /search: Traditional or agentic search
- GET /search/suggestions: Related-query suggestions
- DELETE /cache: Clear query and embedding caches
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .common.config import load_config
from .common.errors import ChunkingError, DimensionMismatch, RetrievalUnavailable
from .common.schemas import (
    AgenticConfig,
    Query,
    QueryContext,
    QueryFilters,
    QueryMode,
    QueryOptions,
    RawDocument,
    Response,
)
from .engine import RagEngine, build_engine

logger = logging.getLogger("ragent.server")


# =============================================================================
# Request Models
# =============================================================================

class SearchOptions(BaseModel):
    """Search options as accepted over HTTP (rerank is on unless disabled)"""
    top_k: int = Field(default=10, ge=1, le=100)
    threshold: float = Field(default=0.0, ge=0.0, le=1.0)
    rerank: bool = True
    include_metadata: bool = True
    intent: Optional[str] = None
    complexity: Optional[str] = None
    max_steps: Optional[int] = Field(default=None, ge=1)
    time_limit: Optional[float] = Field(default=None, gt=0)
    max_expansion_rounds: Optional[int] = Field(default=None, ge=0)
    language: Optional[str] = None


class SearchRequest(BaseModel):
    """POST /search body"""
    query: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    context: QueryContext = Field(default_factory=QueryContext)
    filters: QueryFilters = Field(default_factory=QueryFilters)
    options: SearchOptions = Field(default_factory=SearchOptions)
    mode: QueryMode = QueryMode.TRADITIONAL

    def to_query(self) -> Query:
        opts = self.options
        agentic_fields = {
            k: v for k, v in opts.model_dump(
                include={"intent", "complexity", "max_steps", "time_limit",
                         "max_expansion_rounds", "language"},
            ).items()
            if v is not None
        }
        query_options = {
            k: v for k, v in opts.model_dump(
                include={"top_k", "threshold", "rerank", "include_metadata"},
                exclude_unset=True,
            ).items()
        }
        query_options.setdefault("rerank", opts.rerank)
        return Query(
            query=self.query,
            user_id=self.user_id,
            context=self.context,
            filters=self.filters,
            options=QueryOptions(
                mode=self.mode,
                agentic=AgenticConfig(**agentic_fields),
                **query_options,
            ),
        )


class BatchRequest(BaseModel):
    """POST /documents/batch body"""
    documents: List[RawDocument] = Field(..., min_length=1)


def serialize_response(response: Response, include_metadata: bool = True) -> dict:
    """Response as JSON; vectors are never sent over the wire."""
    document_exclude = {"embedding": True}
    if include_metadata:
        document_exclude["chunks"] = {"__all__": {"embedding"}}
    else:
        document_exclude["chunks"] = True
    return response.model_dump(
        mode="json",
        exclude={"results": {"__all__": document_exclude}},
    )


# =============================================================================
# Application
# =============================================================================

def create_app(engine: Optional[RagEngine] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        engine: Engine to serve; built from ~/.ragent/config.json at startup when None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "engine", None) is None:
            logger.info("Building engine from configuration")
            app.state.engine = build_engine(load_config())
        logger.info("ragent server ready")
        yield
        logger.info("ragent server shutting down")

    app = FastAPI(
        title="ragent",
        description="Retrieval-augmented reasoning over a document corpus",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    def get_engine(request: Request) -> RagEngine:
        current = request.app.state.engine
        if current is None:
            raise HTTPException(status_code=503, detail="Engine not initialized")
        return current

    # -------------------------------------------------------------------------
    # Error mapping
    # -------------------------------------------------------------------------

    @app.exception_handler(RetrievalUnavailable)
    async def retrieval_unavailable(request: Request, exc: RetrievalUnavailable):
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(ChunkingError)
    async def chunking_error(request: Request, exc: ChunkingError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(DimensionMismatch)
    async def dimension_mismatch(request: Request, exc: DimensionMismatch):
        logger.error("Dimension mismatch: %s", exc)
        return JSONResponse(status_code=500, content={"detail": "embedding dimension mismatch"})

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint"""
        current = request.app.state.engine
        return {
            "status": "healthy",
            "service": "ragent",
            "initialized": current is not None,
            "documents": len(current.store) if current else 0,
        }

    @app.get("/stats")
    async def get_stats(request: Request):
        """Corpus and cache statistics"""
        stats = get_engine(request).stats()
        stats["service"] = "ragent"
        stats["timestamp"] = datetime.now(timezone.utc).isoformat()
        return stats

    @app.post("/documents")
    async def ingest_document(raw: RawDocument, request: Request):
        """Ingest one document (replaces any document with the same id)"""
        document = await get_engine(request).ingest(raw)
        return {
            "status": "stored",
            "id": document.id,
            "chunks": len(document.chunks),
            "degraded": document.degraded,
        }

    @app.post("/documents/batch")
    async def ingest_batch(batch: BatchRequest, request: Request):
        """Ingest several documents; failures are reported per document"""
        report = await get_engine(request).ingest_batch(batch.documents)
        return {
            "stored": [
                {"id": d.id, "chunks": len(d.chunks), "degraded": d.degraded}
                for d in report.documents
            ],
            "failed": [{"id": f.document_id, "error": f.error} for f in report.failures],
            "succeeded_count": report.succeeded,
            "failed_count": report.failed,
        }

    @app.delete("/documents/{document_id}")
    async def delete_document(document_id: str, request: Request):
        """Remove a document from the store"""
        if not await get_engine(request).store.delete(document_id):
            raise HTTPException(status_code=404, detail="Document not found")
        return {"status": "deleted", "id": document_id}

    @app.post("/search")
    async def search(body: SearchRequest, request: Request):
        """Search in traditional or agentic mode"""
        query = body.to_query()
        response = await get_engine(request).search(query)
        return serialize_response(response, include_metadata=body.options.include_metadata)

    @app.get("/search/suggestions")
    async def search_suggestions(request: Request, query: str, language: Optional[str] = None):
        """Related-query suggestions for a query"""
        if not query.strip():
            raise HTTPException(status_code=400, detail="Missing query parameter")
        suggestions = await get_engine(request).suggestions(query, language=language)
        return {"query": query, "suggestions": suggestions, "count": len(suggestions)}

    @app.delete("/cache")
    async def clear_cache(request: Request):
        """Clear the query-response and embedding caches"""
        get_engine(request).clear_cache()
        return {"status": "cleared"}

    return app


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the ragent server"""
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("RAGENT_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config()
    app = create_app(build_engine(config))

    logger.info("Starting server on %s:%d", config.server.host, config.server.port)
    uvicorn.run(app, host=config.server.host, port=config.server.port, reload=False)


if __name__ == "__main__":
    run_server()
