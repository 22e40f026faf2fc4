"""
Document Schemas

Core principle: a stored Document always carries at least one Chunk, and
every chunk embedding has the same dimensionality as the document embedding.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..errors import DimensionMismatch


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# Enums
# ============================================================================

class ChunkType(str, Enum):
    """Role of a chunk within its document"""
    TITLE = "title"
    SUMMARY = "summary"
    CONTENT = "content"
    CONCLUSION = "conclusion"


# ============================================================================
# Sub-models
# ============================================================================

class ChunkMetadata(BaseModel):
    """Chunk-level annotations"""
    chunk_type: ChunkType = ChunkType.CONTENT
    importance: int = Field(default=5, ge=1, le=10)
    keywords: List[str] = Field(default_factory=list)


class Chunk(BaseModel):
    """A contiguous semantic slice of a document's text"""
    id: str = Field(..., description="{document_id}_chunk_{position}")
    content: str
    embedding: List[float]
    position: int = Field(ge=0)
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)


class DocumentMetadata(BaseModel):
    """Caller-supplied metadata plus model-derived enrichment"""
    title: str
    source: str = "unknown"
    category: str = "general"
    tags: List[str] = Field(default_factory=list)
    published_at: datetime = Field(default_factory=utcnow)
    author: Optional[str] = None
    url: Optional[str] = None
    difficulty: Optional[str] = None
    reading_time: Optional[int] = None  # minutes

    # Enrichment (Language Model Service, best-effort)
    topics: List[str] = Field(default_factory=list)
    sentiment: Optional[str] = None
    complexity: Optional[int] = None  # 1-10
    actionable: Optional[bool] = None
    prerequisites: List[str] = Field(default_factory=list)
    related_concepts: List[str] = Field(default_factory=list)

    @field_validator("published_at")
    @classmethod
    def normalize_published_at(cls, value: datetime) -> datetime:
        return ensure_aware(value)


# ============================================================================
# Main Schemas
# ============================================================================

class RawDocument(BaseModel):
    """A document as handed over by the content-acquisition collaborator"""
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    content: str = ""
    summary: str = ""
    tags: List[str] = Field(default_factory=list)
    category: str = "general"
    source: str = "unknown"
    published_at: datetime = Field(default_factory=utcnow)
    author: Optional[str] = None
    url: Optional[str] = None
    difficulty: Optional[str] = None
    reading_time: Optional[int] = None

    @field_validator("published_at")
    @classmethod
    def normalize_published_at(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    def to_metadata(self) -> DocumentMetadata:
        return DocumentMetadata(
            title=self.title,
            source=self.source,
            category=self.category,
            tags=list(self.tags),
            published_at=self.published_at,
            author=self.author,
            url=self.url,
            difficulty=self.difficulty,
            reading_time=self.reading_time,
        )


class Document(BaseModel):
    """
    A processed, searchable document.

    Owned by the Vector Store after ingestion; re-ingestion replaces it
    wholesale.
    """
    id: str
    content: str
    metadata: DocumentMetadata
    embedding: List[float]
    chunks: List[Chunk] = Field(..., min_length=1)
    last_updated: datetime = Field(default_factory=utcnow)
    degraded: bool = False  # some embedding came from the fallback path

    @property
    def dimension(self) -> int:
        return len(self.embedding)

    @model_validator(mode="after")
    def check_chunk_dimensions(self) -> "Document":
        for chunk in self.chunks:
            if len(chunk.embedding) != len(self.embedding):
                raise DimensionMismatch(len(self.embedding), len(chunk.embedding))
        return self
