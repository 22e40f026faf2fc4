"""
Ingestion - Raw documents to searchable Documents

Key Components:
- SemanticChunker: LLM chunking with a fixed-size fallback
- DocumentProcessor: Chunk, embed, extract keywords, enhance metadata
"""

from .chunker import ChunkDraft, SemanticChunker, fixed_size_chunks
from .processor import DocumentProcessor, IngestFailure, IngestReport

__all__ = [
    "ChunkDraft",
    "SemanticChunker",
    "fixed_size_chunks",
    "DocumentProcessor",
    "IngestFailure",
    "IngestReport",
]
