"""
ragent Schemas

Documents, queries, and responses exchanged across the engine.
"""

from .document import (
    Chunk,
    ChunkMetadata,
    ChunkType,
    Document,
    DocumentMetadata,
    RawDocument,
    utcnow,
)
from .query import (
    AgenticConfig,
    DateRange,
    Query,
    QueryContext,
    QueryFilters,
    QueryMode,
    QueryOptions,
)
from .response import (
    AgentDecision,
    AgenticData,
    NextAction,
    Response,
    RetrievalStep,
    RetrievedChunk,
    SourceCitation,
    StepType,
)

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "ChunkType",
    "Document",
    "DocumentMetadata",
    "RawDocument",
    "utcnow",
    "AgenticConfig",
    "DateRange",
    "Query",
    "QueryContext",
    "QueryFilters",
    "QueryMode",
    "QueryOptions",
    "AgentDecision",
    "AgenticData",
    "NextAction",
    "Response",
    "RetrievalStep",
    "RetrievedChunk",
    "SourceCitation",
    "StepType",
]
