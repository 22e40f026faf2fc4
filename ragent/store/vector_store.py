"""
Vector Store

Holds processed Documents keyed by id and answers similarity queries.

Scoring blends document-level and best-chunk similarity:
    score = 0.7 * cos(q, doc) + 0.3 * max_chunk cos(q, chunk)
clamped to [0, 1]. Reads iterate over a snapshot of the id map, so a search
never observes a half-written document; writes to one id are serialized by
a per-id lock while different ids proceed concurrently.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from ..common.errors import DimensionMismatch
from ..common.llm_utils import clamp
from ..common.schemas import Document, QueryFilters, RetrievedChunk

logger = logging.getLogger("ragent.store.vector_store")

DOCUMENT_WEIGHT = 0.7
CHUNK_WEIGHT = 0.3

# search() returns this many candidates per requested result, for reranking
CANDIDATE_FACTOR = 2

UpsertListener = Callable[[str], None]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatch: the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


@dataclass
class ScoredDocument:
    """A search candidate with its combined similarity"""
    document: Document
    score: float


@dataclass
class _IdLock:
    lock: asyncio.Lock
    users: int = 0


class VectorStore(ABC):
    """Abstract document store with similarity search."""

    def __init__(self):
        self._listeners: List[UpsertListener] = []

    @abstractmethod
    async def upsert(self, document: Document) -> None:
        """Insert or replace a document (last write wins)."""

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        """Remove a document; returns whether it existed."""

    @abstractmethod
    def get(self, document_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    def documents(self) -> List[Document]:
        ...

    @abstractmethod
    def search(
        self,
        query_embedding: Sequence[float],
        filters: Optional[QueryFilters] = None,
        top_k: int = 10,
        threshold: float = 0.0,
    ) -> List[ScoredDocument]:
        ...

    @abstractmethod
    def search_chunks(
        self,
        query_embedding: Sequence[float],
        top_k: int = 5,
        threshold: float = 0.3,
        filters: Optional[QueryFilters] = None,
    ) -> List[RetrievedChunk]:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...

    @property
    def chunk_count(self) -> int:
        return sum(len(d.chunks) for d in self.documents())

    def add_listener(self, listener: UpsertListener) -> None:
        """Register a callback invoked with the document id after every write."""
        self._listeners.append(listener)

    def _notify(self, document_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(document_id)
            except Exception as e:
                logger.warning("Store listener failed for %s: %s", document_id, e)


class InMemoryVectorStore(VectorStore):
    """Process-local store; brute-force scoring with numpy."""

    def __init__(self, dimension: Optional[int] = None):
        """
        Args:
            dimension: Required embedding length; None accepts the first
                document's dimension and enforces it afterwards
        """
        super().__init__()
        self._dimension = dimension
        self._documents: Dict[str, Document] = {}
        self._locks: Dict[str, _IdLock] = {}

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    @asynccontextmanager
    async def _locked(self, document_id: str):
        """Serialize writes to one id; the lock is dropped once no writer holds or awaits it."""
        entry = self._locks.get(document_id)
        if entry is None:
            entry = self._locks[document_id] = _IdLock(asyncio.Lock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[document_id]

    async def upsert(self, document: Document) -> None:
        if self._dimension is None:
            self._dimension = document.dimension
        elif document.dimension != self._dimension:
            raise DimensionMismatch(self._dimension, document.dimension)

        async with self._locked(document.id):
            replaced = document.id in self._documents
            # Swap in a new map so concurrent readers keep their snapshot
            documents = dict(self._documents)
            documents[document.id] = document
            self._documents = documents

        logger.info("%s document %s", "Replaced" if replaced else "Stored", document.id)
        self._notify(document.id)

    async def delete(self, document_id: str) -> bool:
        async with self._locked(document_id):
            if document_id not in self._documents:
                return False
            documents = dict(self._documents)
            del documents[document_id]
            self._documents = documents

        logger.info("Deleted document %s", document_id)
        self._notify(document_id)
        return True

    def get(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)

    def documents(self) -> List[Document]:
        return list(self._documents.values())

    def __len__(self) -> int:
        return len(self._documents)

    def search(
        self,
        query_embedding: Sequence[float],
        filters: Optional[QueryFilters] = None,
        top_k: int = 10,
        threshold: float = 0.0,
    ) -> List[ScoredDocument]:
        """
        Rank documents passing ``filters`` by combined similarity.

        Returns at most ``2 * top_k`` candidates with score >= ``threshold``,
        highest first; equal scores put the most recently published first.
        """
        candidates = []
        for document in self._snapshot():
            if filters is not None and not filters.matches(document.metadata):
                continue

            doc_sim = cosine_similarity(query_embedding, document.embedding)
            chunk_sim = max(
                (cosine_similarity(query_embedding, c.embedding) for c in document.chunks),
                default=0.0,
            )
            score = clamp(DOCUMENT_WEIGHT * doc_sim + CHUNK_WEIGHT * max(chunk_sim, 0.0))
            if score >= threshold:
                candidates.append(ScoredDocument(document=document, score=score))

        candidates.sort(
            key=lambda c: (c.score, c.document.metadata.published_at.timestamp()),
            reverse=True,
        )
        return candidates[:top_k * CANDIDATE_FACTOR]

    def search_chunks(
        self,
        query_embedding: Sequence[float],
        top_k: int = 5,
        threshold: float = 0.3,
        filters: Optional[QueryFilters] = None,
    ) -> List[RetrievedChunk]:
        """Chunk-level search; relevance is the clamped cosine similarity."""
        hits = []
        for document in self._snapshot():
            if filters is not None and not filters.matches(document.metadata):
                continue
            meta = document.metadata
            for chunk in document.chunks:
                relevance = clamp(cosine_similarity(query_embedding, chunk.embedding))
                if relevance < threshold:
                    continue
                hits.append(RetrievedChunk(
                    id=chunk.id,
                    document_id=document.id,
                    title=meta.title,
                    source=meta.source,
                    category=meta.category,
                    content=chunk.content,
                    relevance_score=relevance,
                    url=meta.url,
                    author=meta.author,
                    published_at=meta.published_at,
                ))

        hits.sort(key=lambda h: h.relevance_score, reverse=True)
        return hits[:top_k]

    def _snapshot(self) -> List[Document]:
        return list(self._documents.values())
