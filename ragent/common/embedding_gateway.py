"""
Embedding Gateway

Thin async wrapper around the external Embedding Service:
- LRU cache keyed by a hash of the exact input text
- hard per-call timeout (blocking SDK call runs in a worker thread)
- bounded parallelism for batch embedding
- degraded fallback: a pseudo-random vector of the right dimension, flagged
  so callers that care about fidelity can tell
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .cache import LRUCache, stable_hash
from .errors import DimensionMismatch

logger = logging.getLogger("ragent.common.embedding_gateway")


@dataclass(frozen=True)
class EmbeddingResult:
    """An embedding vector and whether it came from the fallback path"""
    vector: List[float]
    degraded: bool = False


class EmbeddingGateway:
    """Cached, timeout-bounded access to the Embedding Service."""

    def __init__(
        self,
        service,
        dimension: int = 1536,
        cache_size: int = 10000,
        timeout: float = 20.0,
        max_concurrency: int = 8,
        seed: Optional[int] = None,
    ):
        """
        Args:
            service: Object exposing ``embed_single(text) -> List[float]``
            dimension: Expected vector length; anything else is a DimensionMismatch
            cache_size: Max cached embeddings (LRU eviction)
            timeout: Seconds before a call is treated as a service failure
            max_concurrency: Upper bound on in-flight calls from ``embed_many``
            seed: Seed for the fallback vector generator (tests)
        """
        self._service = service
        self._dimension = dimension
        self._timeout = timeout
        self._cache = LRUCache(max_size=cache_size)
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._rng = np.random.default_rng(seed)
        self.degraded_calls = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def embed(self, text: str) -> EmbeddingResult:
        """Embed one text; never raises for service failures."""
        key = stable_hash(text)
        cached = self._cache.get(key)
        if cached is not None:
            return EmbeddingResult(vector=cached)

        try:
            vector = await asyncio.wait_for(
                asyncio.to_thread(self._service.embed_single, text),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Embedding timed out after %.1fs, using fallback vector", self._timeout)
            return self._fallback()
        except Exception as e:
            logger.warning("Embedding service failed (%s), using fallback vector", e)
            return self._fallback()

        vector = [float(x) for x in vector]
        if len(vector) != self._dimension:
            raise DimensionMismatch(self._dimension, len(vector))

        self._cache.set(key, vector)
        return EmbeddingResult(vector=vector)

    async def embed_many(self, texts: List[str]) -> List[EmbeddingResult]:
        """Embed several texts concurrently; order of results matches ``texts``."""

        async def _bounded(text: str) -> EmbeddingResult:
            async with self._semaphore:
                return await self.embed(text)

        return list(await asyncio.gather(*(_bounded(t) for t in texts)))

    def _fallback(self) -> EmbeddingResult:
        self.degraded_calls += 1
        vector = self._rng.uniform(-0.5, 0.5, self._dimension)
        return EmbeddingResult(vector=vector.tolist(), degraded=True)
