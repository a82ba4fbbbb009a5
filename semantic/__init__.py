"""Text similarity services used by AI-enabled match fields.

Two backends: an OpenAI-compatible chat-completions gateway and local
sentence-transformers embeddings. Both expose ``compare(text1, text2, context)``
returning a ``SemanticScore`` in [0, 1].
"""
from __future__ import annotations

from .base import SemanticComparisonError, SemanticScore, TextComparer, get_comparer

__all__ = ["SemanticComparisonError", "SemanticScore", "TextComparer", "get_comparer"]
