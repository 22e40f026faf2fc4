"""
ragent

Retrieval-augmented reasoning over a document corpus.

Documents are chunked, embedded and stored; queries are answered either by
ranked similarity search (traditional mode) or by a Planner / Retriever /
Reasoner loop that plans, retrieves, checks sufficiency and synthesizes a
cited answer (agentic mode).

Usage:
    from ragent.engine import build_engine
    from ragent.common.schemas import RawDocument, Query

    engine = build_engine()
    await engine.ingest(RawDocument(id="doc1", title="RAG Basics", content="..."))
    response = await engine.search(Query(query="What is RAG?"))
"""

__version__ = "0.1.0"
