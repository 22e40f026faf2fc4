"""
Embedding Service

Client for the external Embedding Service (text -> fixed-length vector).
Supports OpenAI and Google hosted embeddings, and on-device fastembed.
Errors propagate to the caller; caching and fallback live in the
EmbeddingGateway.
"""

import logging
from typing import List, Optional

import numpy as np

logger = logging.getLogger("ragent.common.embedding_service")


class EmbeddingService:
    """
    Embedding client for one provider/model pair.

    Unlike a process-wide singleton, each engine owns its own instance so
    several isolated engines can coexist (tests, multi-tenant hosts).
    """

    def __init__(
        self,
        provider: str = "openai",
        model: str = "text-embedding-3-large",
        dimension: int = 1536,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        timeout: float = 20.0,
    ):
        self.provider = (provider or "openai").lower()
        self.model = model
        self.dimension = dimension
        self.timeout = timeout
        self._client = None

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("openai API key not provided, embedding service unavailable")
                return
            try:
                from openai import OpenAI

                self._client = OpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI embeddings: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("google API key not provided, embedding service unavailable")
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini embeddings: %s", e)
            return

        if self.provider == "fastembed":
            try:
                from fastembed import TextEmbedding

                self._client = TextEmbedding(model_name=model)
                logger.info("Initialized fastembed model %s", model)
            except ImportError:
                logger.warning("fastembed package not installed")
            except Exception as e:
                logger.warning("Failed to initialize fastembed model %s: %s", model, e)
            return

        logger.warning("Unsupported embedding provider: %s", self.provider)

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        return self._client is not None

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors, one per input text
        """
        if not self.is_available:
            raise RuntimeError(f"Embedding provider {self.provider} is not available")

        if not texts:
            return []

        if self.provider == "openai":
            response = self._client.embeddings.create(
                model=self.model,
                input=texts,
                dimensions=self.dimension,
                timeout=self.timeout,
            )
            return [list(item.embedding) for item in response.data]

        if self.provider == "google":
            vectors = []
            for text in texts:
                result = self._client.embed_content(
                    model=self.model,
                    content=text,
                    output_dimensionality=self.dimension,
                    request_options={"timeout": self.timeout},
                )
                vectors.append(list(result["embedding"]))
            return vectors

        embeddings = list(self._client.embed(texts))
        return [e.tolist() if isinstance(e, np.ndarray) else list(e) for e in embeddings]

    def embed_single(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: String to embed

        Returns:
            Embedding vector
        """
        if not text:
            raise ValueError("Cannot embed empty text")

        return self.embed([text])[0]


def create_embedding_service(embedding_config, llm_config) -> EmbeddingService:
    """Build an EmbeddingService from config; API keys are shared with the LLM section."""
    return EmbeddingService(
        provider=embedding_config.provider,
        model=embedding_config.model,
        dimension=embedding_config.dimension,
        openai_api_key=llm_config.openai_api_key or None,
        google_api_key=llm_config.google_api_key or None,
        timeout=embedding_config.timeout,
    )
