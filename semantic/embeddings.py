"""Embedding comparer: local sentence-transformers cosine similarity.

Wraps sentence-transformers with batching, retries and a cached model.
"""
from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Iterable

import numpy as np
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from crm.config import settings

from .base import SemanticComparisonError, SemanticScore

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)


class EmbeddingError(SemanticComparisonError):
    """Raised when embedding computation fails."""
    pass


@lru_cache(maxsize=1)
def _load_model() -> SentenceTransformer:
    """Load and cache the sentence transformer model.

    Raises:
        EmbeddingError: If sentence-transformers is missing or loading fails
    """
    try:
        from sentence_transformers import SentenceTransformer
    except ImportError as e:
        raise EmbeddingError(
            "sentence-transformers is not installed; install the 'embeddings' extra "
            "or set SEMANTIC_BACKEND=gateway"
        ) from e

    try:
        logger.info(
            f"Loading embedding model: {settings.semantic.embedding_model_name} "
            f"on device: {settings.semantic.device}"
        )
        return SentenceTransformer(
            settings.semantic.embedding_model_name,
            device=settings.semantic.device,
        )
    except Exception as e:
        logger.error(f"Failed to load embedding model: {e}")
        raise EmbeddingError(f"Model loading failed: {e}") from e


@retry(
    retry=retry_if_exception_type(EmbeddingError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)
def embed_texts(texts: list[str] | Iterable[str]) -> np.ndarray:
    """Compute L2-normalized embeddings for a batch of texts.

    Args:
        texts: Texts to embed; must be non-empty strings

    Returns:
        Array of shape (len(texts), dim)

    Raises:
        EmbeddingError: If embedding computation fails after retries
        ValueError: If texts is empty or contains invalid data
    """
    text_list = list(texts)
    if not text_list:
        raise ValueError("No texts to embed")
    if not all(isinstance(t, str) and t.strip() for t in text_list):
        raise ValueError("All items in texts must be non-empty strings")

    model = _load_model()
    try:
        return model.encode(
            text_list,
            batch_size=settings.semantic.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=True,
        )
    except Exception as e:
        logger.error(f"Embedding computation failed: {e}")
        raise EmbeddingError(f"Failed to compute embeddings: {e}") from e


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two vectors; 0.0 when either is all zeros."""
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b) / denom)


class EmbeddingComparer:
    """Scores two texts by the cosine similarity of their embeddings.

    Negative similarities are clamped to 0.
    """

    async def compare(self, text1: str, text2: str, context: str) -> SemanticScore:
        vectors = await asyncio.to_thread(embed_texts, [text1, text2])
        similarity = cosine_similarity(vectors[0], vectors[1])
        return SemanticScore(
            score=similarity,
            reasoning=f"Embedding cosine similarity for {context}: {similarity:.2f}",
        )
