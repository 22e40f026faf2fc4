"""Vector Store backends."""

from .vector_store import InMemoryVectorStore, ScoredDocument, VectorStore, cosine_similarity

__all__ = [
    "InMemoryVectorStore",
    "ScoredDocument",
    "VectorStore",
    "cosine_similarity",
]
