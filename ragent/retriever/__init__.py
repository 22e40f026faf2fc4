"""
Retriever - Traditional Query Pipeline

Key Components:
- QueryProcessor: Normalizes and rewrites queries
- Reranker: LLM relevance reordering (never drops candidates)
- Explainer: Explanation and related queries
- QueryPipeline: Cache, embed, search, rerank, explain

Pipeline:
1. Return a cached response when one is fresh
2. Rewrite the query for semantic search
3. Embed and search the Vector Store
4. Optionally rerank, then explain and suggest related queries
"""

from .explainer import Explainer
from .pipeline import QueryPipeline, calculate_confidence
from .query_processor import ParsedQuery, QueryProcessor
from .reranker import Reranker

__all__ = [
    "Explainer",
    "QueryPipeline",
    "calculate_confidence",
    "ParsedQuery",
    "QueryProcessor",
    "Reranker",
]
