"""Comparator protocol, result type and backend selection."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from crm.config import SemanticBackend, settings

logger = logging.getLogger(__name__)


class SemanticComparisonError(Exception):
    """Raised when a semantic comparison cannot be computed."""
    pass


@dataclass
class SemanticScore:
    """Similarity of two texts, clamped to [0, 1]."""
    score: float
    reasoning: str = ""

    def __post_init__(self) -> None:
        self.score = max(0.0, min(1.0, float(self.score)))


class TextComparer(Protocol):
    async def compare(self, text1: str, text2: str, context: str) -> SemanticScore:
        ...


def get_comparer(backend: SemanticBackend | str | None = None) -> TextComparer | None:
    """Build the configured comparer, or None when AI matching is disabled.

    Args:
        backend: Override for SEMANTIC_BACKEND

    Returns:
        A comparer instance, or None for the ``none`` backend
    """
    backend = SemanticBackend(backend or settings.semantic.backend)

    if backend == SemanticBackend.GATEWAY:
        from .gateway import GatewayComparer
        return GatewayComparer()
    if backend == SemanticBackend.EMBEDDINGS:
        from .embeddings import EmbeddingComparer
        return EmbeddingComparer()

    logger.debug("Semantic comparison disabled")
    return None
