"""
ragent Common Module

Shared infrastructure: configuration, external service clients, caches and
the error taxonomy.
"""

from .cache import LRUCache, TTLCache, stable_hash
from .config import RagentConfig, load_config, save_config
from .embedding_gateway import EmbeddingGateway, EmbeddingResult
from .embedding_service import EmbeddingService
from .errors import (
    ChunkingError,
    DimensionMismatch,
    OrchestratorAborted,
    RagentError,
    RetrievalUnavailable,
    ServiceUnavailable,
)
from .llm_client import LLMClient

__all__ = [
    "LRUCache",
    "TTLCache",
    "stable_hash",
    "RagentConfig",
    "load_config",
    "save_config",
    "EmbeddingGateway",
    "EmbeddingResult",
    "EmbeddingService",
    "ChunkingError",
    "DimensionMismatch",
    "OrchestratorAborted",
    "RagentError",
    "RetrievalUnavailable",
    "ServiceUnavailable",
    "LLMClient",
]
