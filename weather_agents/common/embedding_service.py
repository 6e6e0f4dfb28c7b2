"""
Embedding Service

On-device embeddings with fastembed by default, or OpenAI embeddings when
configured. Also hosts the cosine similarity used by the Retriever.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

import numpy as np

logger = logging.getLogger("weather.common.embedding_service")

DEFAULT_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
OPENAI_DEFAULT_MODEL = "text-embedding-3-small"


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero norm. The result is clipped to
    [-1, 1] to absorb floating point drift.

    Raises:
        ValueError: if the vectors differ in dimension
    """
    v1 = np.asarray(vec1, dtype=float)
    v2 = np.asarray(vec2, dtype=float)

    if v1.shape != v2.shape:
        raise ValueError(f"Vector dimension mismatch: {v1.shape} vs {v2.shape}")

    norm1 = np.linalg.norm(v1)
    norm2 = np.linalg.norm(v2)
    if norm1 == 0.0 or norm2 == 0.0:
        return 0.0

    similarity = float(np.dot(v1, v2) / (norm1 * norm2))
    return max(-1.0, min(1.0, similarity))


class EmbeddingService:
    """
    Text embedding backend.

    mode="femb" runs fastembed locally; mode="openai" calls the OpenAI
    embeddings API. Backends are created lazily on first use so that building
    the pipeline never downloads a model.
    """

    def __init__(
        self,
        mode: str = "femb",
        model: str = DEFAULT_MODEL,
        openai_api_key: Optional[str] = None,
    ) -> None:
        self._mode = mode
        self._model = model
        self._openai_api_key = openai_api_key
        self._backend = None

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def model(self) -> str:
        return self._model

    def _init_backend(self) -> None:
        if self._mode == "femb":
            from fastembed import TextEmbedding

            self._backend = TextEmbedding(model_name=self._model)
        elif self._mode == "openai":
            from openai import OpenAI

            if not self._openai_api_key:
                raise RuntimeError("OpenAI embedding mode requires an API key")
            self._backend = OpenAI(api_key=self._openai_api_key)
        else:
            raise RuntimeError(f"Unsupported embedding mode: {self._mode}")
        logger.info("Initialized embeddings with mode=%s, model=%s", self._mode, self._model)

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors
        """
        if not texts:
            return []
        if self._backend is None:
            self._init_backend()

        if self._mode == "openai":
            response = self._backend.embeddings.create(model=self._model, input=texts)
            return [list(item.embedding) for item in response.data]

        return [np.asarray(vec, dtype=float).tolist() for vec in self._backend.embed(texts)]

    def embed_single(self, text: str) -> List[float]:
        if not text:
            raise ValueError("Cannot embed empty text")
        return self.embed_batch([text])[0]

    async def embed(self, text: str) -> List[float]:
        """Embed one text without blocking the event loop."""
        return await asyncio.to_thread(self.embed_single, text)


_service_instance: Optional[EmbeddingService] = None


def get_embedding_service(
    mode: str = "femb",
    model: str = DEFAULT_MODEL,
    openai_api_key: Optional[str] = None,
) -> EmbeddingService:
    """
    Get the shared EmbeddingService instance.

    Args:
        mode: Embedding mode (femb, openai)
        model: Model name

    Returns:
        EmbeddingService instance
    """
    global _service_instance

    if _service_instance is None:
        _service_instance = EmbeddingService(mode=mode, model=model, openai_api_key=openai_api_key)

    return _service_instance
