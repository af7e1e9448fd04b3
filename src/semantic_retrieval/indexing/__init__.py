"""
Indexing module - chunk, embed and store documents.

This module provides:
- ChunkIndexer: synchronous, never-raising indexing of one document
- IndexDispatcher: background indexing with Future outcomes
- extract_topics(): informational topic tags
"""

from semantic_retrieval.indexing.indexer import ChunkIndexer
from semantic_retrieval.indexing.dispatcher import IndexDispatcher
from semantic_retrieval.indexing.topics import extract_topics

__all__ = [
    "ChunkIndexer",
    "IndexDispatcher",
    "extract_topics",
]
