"""
Chunking module - split documents into embeddable passages.

This module provides:
- Chunker: boundary-aware, deterministic splitter
- ChunkConfig: sizing in characters
- chunk_config_for(): sizing heuristics per content type
"""

from semantic_retrieval.chunking.splitter import (
    ChunkConfig,
    ChunkSequence,
    Chunker,
    chunk_config_for,
    estimate_tokens,
    is_chunkable,
)

__all__ = [
    "ChunkConfig",
    "ChunkSequence",
    "Chunker",
    "chunk_config_for",
    "estimate_tokens",
    "is_chunkable",
]
