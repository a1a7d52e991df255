"""
Embedding Service

One fixed-length vector per text. Supports the Gemini embedding API
(default), OpenAI embeddings, and on-device fastembed models.

Unlike extraction there is no degraded embedding: every provider failure
or dimension mismatch raises EmbeddingError.
"""

import logging
from typing import List, Optional

import numpy as np

from .config import EmbeddingConfig
from .errors import EmbeddingError
from .schemas.templates import render_embedding_text, render_image_embedding_text

logger = logging.getLogger("sift.common.embedding_service")

TASK_DOCUMENT = "retrieval_document"
TASK_QUERY = "retrieval_query"


class EmbeddingService:
    """
    Embedding generation for records, images and queries.

    The configured dimension is enforced on every vector so that stored
    records and queries always live in the same space.
    """

    def __init__(
        self,
        config: Optional[EmbeddingConfig] = None,
        google_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
    ):
        self.config = config or EmbeddingConfig()
        self.provider = self.config.provider.lower()
        self.model = self.config.model
        self.dimension = self.config.dimension
        self._client = None

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
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("openai API key not provided, embedding service unavailable")
                return
            try:
                from openai import OpenAI

                self._client = OpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            return

        if self.provider == "fastembed":
            try:
                from fastembed import TextEmbedding

                self._client = TextEmbedding(model_name=self.model)
            except ImportError:
                logger.warning("fastembed package not installed (pip install sift-knowledge[local-embeddings])")
            except Exception as e:
                logger.warning("Failed to load fastembed model %s: %s", self.model, e)
            return

        logger.warning("Unsupported embedding provider: %s", self.provider)

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        return self._client is not None

    def embed(self, texts: List[str], task: str = TASK_DOCUMENT) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed
            task: retrieval_document or retrieval_query (used by Gemini)

        Returns:
            List of embedding vectors, each of the configured dimension

        Raises:
            EmbeddingError: provider unavailable, call failed, or wrong dimension
        """
        if not self.is_available:
            raise EmbeddingError(f"Embedding provider '{self.provider}' is not available")

        if not texts:
            return []

        try:
            vectors = self._call_provider(texts, task)
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error("Embedding call failed (%s): %s", self.provider, e)
            raise EmbeddingError(f"Embedding call failed: {e}") from e

        if len(vectors) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} vectors, got {len(vectors)}")

        for vec in vectors:
            if len(vec) != self.dimension:
                raise EmbeddingError(
                    f"Embedding dimension mismatch: expected {self.dimension}, got {len(vec)}"
                )
        return vectors

    def _call_provider(self, texts: List[str], task: str) -> List[List[float]]:
        if self.provider == "google":
            response = self._client.embed_content(
                model=self.model,
                content=texts,
                task_type=task,
            )
            vectors = response["embedding"]
            # A single input may come back unwrapped
            if vectors and isinstance(vectors[0], (int, float)):
                vectors = [vectors]
            return [list(map(float, v)) for v in vectors]

        if self.provider == "openai":
            response = self._client.embeddings.create(
                model=self.model,
                input=texts,
                dimensions=self.dimension,
            )
            return [list(item.embedding) for item in response.data]

        if self.provider == "fastembed":
            return [np.asarray(v, dtype=float).tolist() for v in self._client.embed(texts)]

        raise EmbeddingError(f"Unsupported embedding provider: {self.provider}")

    def embed_single(self, text: str, task: str = TASK_DOCUMENT) -> List[float]:
        """Generate embedding for a single text."""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        return self.embed([text], task=task)[0]

    def embed_query(self, question: str) -> List[float]:
        """Embed raw question text for retrieval"""
        return self.embed_single(question, task=TASK_QUERY)

    def embed_record(self, record) -> List[float]:
        """Embed a KnowledgeRecord from its dense fields"""
        return self.embed_single(render_embedding_text(record))

    def embed_image(self, image) -> List[float]:
        """Embed an analyzed ImageRecord"""
        return self.embed_single(render_image_embedding_text(image))


def cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
    """
    Cosine similarity between two vectors, clamped to [0, 1].

    Raises:
        ValueError: on dimension mismatch
    """
    v1 = np.asarray(vec1, dtype=float)
    v2 = np.asarray(vec2, dtype=float)
    if v1.shape != v2.shape:
        raise ValueError(f"Vector dimension mismatch: {v1.shape} vs {v2.shape}")

    denom = np.linalg.norm(v1) * np.linalg.norm(v2)
    if denom == 0:
        return 0.0
    similarity = float(np.dot(v1, v2) / denom)
    return max(0.0, min(1.0, similarity))


def batch_cosine_similarity(query_vec: List[float], vectors: List[List[float]]) -> List[float]:
    """Cosine similarity between a query and many vectors in one matrix product."""
    if not vectors:
        return []

    query = np.asarray(query_vec, dtype=float)
    matrix = np.asarray(vectors, dtype=float)
    if matrix.ndim != 2 or matrix.shape[1] != query.shape[0]:
        raise ValueError(f"Vector dimension mismatch: {matrix.shape} vs {query.shape}")

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    with np.errstate(divide="ignore", invalid="ignore"):
        similarities = np.where(norms > 0, matrix @ query / norms, 0.0)
    return np.clip(similarities, 0.0, 1.0).tolist()
