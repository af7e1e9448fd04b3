"""
semantic_retrieval - document chunking, embedding, backfill and
similarity search for a personal knowledge base.

Entry points:
- semantic_retrieval.service.build_service(): wired facade
- semantic-retrieval: command-line interface
"""

__version__ = "0.1.0"
