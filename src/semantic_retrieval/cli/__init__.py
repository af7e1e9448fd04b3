"""
CLI module - unified command-line interface.

Provides entry points for:
- Ad-hoc embedding and search
- Backfill runs and status
- Recommendations and reindexing
- Schema creation
"""

from semantic_retrieval.cli.commands import (
    main,
    run_embed_cli,
    run_backfill_cli,
    run_recommend_cli,
    run_search_cli,
    run_reindex_cli,
    run_status_cli,
    run_schema_cli,
)

__all__ = [
    "main",
    "run_embed_cli",
    "run_backfill_cli",
    "run_recommend_cli",
    "run_search_cli",
    "run_reindex_cli",
    "run_status_cli",
    "run_schema_cli",
]
