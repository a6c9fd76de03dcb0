"""
Embeddings
==========

Text-to-vector conversion for semantic profile search.

This module provides:
- EmbeddingGenerator: OpenAI embeddings with an in-process cache
"""

from botsmith.rag.embeddings import EmbeddingGenerator

__all__ = ["EmbeddingGenerator"]
