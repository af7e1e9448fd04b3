"""
CLI commands - operator entry points for the retrieval pipeline.

Each command follows a consistent pattern:
1. Parse arguments
2. Build the service from the environment
3. Run one operation
4. Print results
5. Return exit code

Pipeline errors are printed as one line on stderr and mapped to a
non-zero exit code; tracebacks are reserved for real bugs.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from semantic_retrieval.core.errors import (
    DocumentNotFound,
    InvalidInput,
    NoEmbedding,
    QuotaExceeded,
    SemanticRetrievalError,
    UpstreamUnavailable,
)
from semantic_retrieval.observability import init_tracing, shutdown_tracing
from semantic_retrieval.schemas import BackfillRequest, EmbeddingRequest, RecommendationRequest
from semantic_retrieval.service import SemanticIndexService, build_service

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID_INPUT = 2
EXIT_NOT_FOUND = 3
EXIT_QUOTA = 4
EXIT_UNAVAILABLE = 5
EXIT_INTERRUPTED = 130


def _load_env() -> None:
    """Load environment variables from .env file."""
    load_dotenv()


def _configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else os.environ.get("LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _exit_code_for(error: SemanticRetrievalError) -> int:
    if isinstance(error, InvalidInput):
        return EXIT_INVALID_INPUT
    if isinstance(error, (NoEmbedding, DocumentNotFound)):
        return EXIT_NOT_FOUND
    if isinstance(error, QuotaExceeded):
        return EXIT_QUOTA
    if isinstance(error, UpstreamUnavailable):
        return EXIT_UNAVAILABLE
    return EXIT_FAILED


def _banner(title: str) -> None:
    print("=" * 60)
    print(title)
    print("=" * 60)


# ---------------------------------------------------------------------------
# COMMANDS
# ---------------------------------------------------------------------------


def run_embed_cli(service: SemanticIndexService, argv: list[str]) -> int:
    """Embed one text and print a preview of the vector."""
    parser = argparse.ArgumentParser(prog="semantic-retrieval embed", description="Embed a text")
    parser.add_argument("text", help="Text to embed")
    parser.add_argument("--purpose", choices=["summary", "query"], default="summary")
    parser.add_argument("--raw", action="store_true", help="Skip unit normalization")
    parser.add_argument("--json", action="store_true", help="Print the full response as JSON")
    args = parser.parse_args(argv)

    request = EmbeddingRequest(text=args.text, purpose=args.purpose, normalize=not args.raw)
    response = service.embed(request)

    if args.json:
        print(response.model_dump_json())
        return EXIT_OK

    preview = ", ".join(f"{x:.4f}" for x in response.embedding[:5])
    print(f"Model:      {response.model}")
    print(f"Dimensions: {response.dimensions}")
    print(f"Tokens:     {response.token_count}")
    print(f"Vector:     [{preview}, ...]")
    return EXIT_OK


def run_backfill_cli(service: SemanticIndexService, argv: list[str]) -> int:
    """Repair missing summary embeddings (or chunk sets with --chunks)."""
    parser = argparse.ArgumentParser(prog="semantic-retrieval backfill", description="Backfill embeddings")
    parser.add_argument("--batch-size", type=int, default=10, help="Documents per batch (1-100)")
    parser.add_argument("--dry-run", action="store_true", help="Compute but do not persist")
    parser.add_argument("--all", action="store_true", help="Re-embed documents that already have a vector")
    parser.add_argument("--owner", default=None, help="Only this owner's documents")
    parser.add_argument("--chunks", action="store_true", help="Backfill chunk sets instead of summaries")
    parser.add_argument("--after-created-at", default=None, help="Resume cursor timestamp (ISO 8601)")
    parser.add_argument("--after-id", default=None, help="Resume cursor document id")
    args = parser.parse_args(argv)

    _banner("CHUNK BACKFILL" if args.chunks else "EMBEDDING BACKFILL")

    if args.chunks:
        chunk_result = service.backfill_chunks(
            batch_size=args.batch_size, dry_run=args.dry_run, owner_id=args.owner
        )
        print(f"  Documents processed: {chunk_result.documents_processed}")
        print(f"  Chunks created:      {chunk_result.chunks_created}")
        print(f"  Chunks embedded:     {chunk_result.chunks_embedded}")
        print(f"  Failed:              {chunk_result.failed}")
        print(f"  Duration:            {chunk_result.duration_ms:.0f}ms")
        return EXIT_FAILED if chunk_result.failed else EXIT_OK

    request = BackfillRequest(
        batch_size=args.batch_size,
        dry_run=args.dry_run,
        skip_existing=not args.all,
        owner_id=args.owner,
        after_created_at=args.after_created_at,
        after_document_id=args.after_id,
    )
    result = service.backfill(request)

    print(f"  Processed: {result.processed}")
    print(f"  Skipped:   {result.skipped}")
    print(f"  Failed:    {result.failed}")
    print(f"  Batches:   {result.batches}")
    print(f"  Tokens:    {result.total_tokens}")
    print(f"  Duration:  {result.duration_ms:.0f}ms")
    if result.dry_run:
        print(f"  Estimated cost: ${result.estimated_cost_usd:.6f} (dry run, nothing saved)")
    for failure in result.failures[:10]:
        print(f"  [FAIL] {failure.document_id}: {failure.error}")
    if len(result.failures) > 10:
        print(f"  ... and {len(result.failures) - 10} more")
    if result.interrupted and result.last_document_id is not None:
        print(
            f"  Interrupted. Resume with: --after-created-at {result.last_created_at.isoformat()} "
            f"--after-id {result.last_document_id}"
        )

    return EXIT_FAILED if result.failed else EXIT_OK


def run_recommend_cli(service: SemanticIndexService, argv: list[str]) -> int:
    """Print documents similar to one document."""
    parser = argparse.ArgumentParser(prog="semantic-retrieval recommend", description="Recommend similar documents")
    parser.add_argument("document_id")
    parser.add_argument("--owner", required=True, help="Owner of the document")
    parser.add_argument("--limit", type=int, default=5, help="Results to return (1-50)")
    parser.add_argument("--threshold", type=float, default=None, help="Minimum similarity")
    args = parser.parse_args(argv)

    request = RecommendationRequest(
        document_id=args.document_id,
        owner_id=args.owner,
        limit=args.limit,
        threshold=args.threshold,
    )
    response = service.recommend(request)

    _banner(f"RECOMMENDATIONS FOR {response.document_id}")
    if not response.recommendations:
        print("  (no documents above threshold)")
    for item in response.recommendations:
        print(f"  {item.similarity:.3f}  {item.document_id}")
    return EXIT_OK


def run_search_cli(service: SemanticIndexService, argv: list[str]) -> int:
    """Semantic search over one owner's documents or passages."""
    parser = argparse.ArgumentParser(prog="semantic-retrieval search", description="Search by text")
    parser.add_argument("query")
    parser.add_argument("--owner", required=True)
    parser.add_argument("--limit", type=int, default=5)
    parser.add_argument("--threshold", type=float, default=None)
    parser.add_argument("--passages", action="store_true", help="Search chunks instead of summaries")
    args = parser.parse_args(argv)

    _banner(f"SEARCH: {args.query}")
    if args.passages:
        passages = service.engine.search_passages(args.query, args.owner, args.threshold, args.limit)
        for p in passages:
            snippet = " ".join(p.text.split())[:80]
            print(f"  {p.similarity:.3f}  {p.document_id}#{p.sequence_index}  {snippet}")
        count = len(passages)
    else:
        matches = service.engine.search_text(args.query, args.owner, args.threshold, args.limit)
        for m in matches:
            print(f"  {m.similarity:.3f}  {m.document_id}")
        count = len(matches)

    if not count:
        print("  (no results above threshold)")
    return EXIT_OK


def run_reindex_cli(service: SemanticIndexService, argv: list[str]) -> int:
    """Rebuild one document's chunks from its current text."""
    parser = argparse.ArgumentParser(prog="semantic-retrieval reindex", description="Reindex a document")
    parser.add_argument("document_id")
    args = parser.parse_args(argv)

    outcome = service.reindex(args.document_id)
    if not outcome.ok:
        print(f"Reindex failed: {outcome.error}", file=sys.stderr)
        return EXIT_FAILED

    print(f"Reindexed {outcome.document_id}")
    print(f"  Chunks:   {outcome.chunks_created} ({outcome.chunks_failed} without vector)")
    print(f"  Tags:     {', '.join(outcome.tags) or '-'}")
    print(f"  Duration: {outcome.duration_ms:.0f}ms")
    return EXIT_OK


def run_status_cli(service: SemanticIndexService, argv: list[str]) -> int:
    """Show how many documents still need a summary embedding."""
    parser = argparse.ArgumentParser(prog="semantic-retrieval status", description="Backfill status")
    parser.add_argument("--owner", default=None)
    args = parser.parse_args(argv)

    status = service.status(args.owner)
    _banner("EMBEDDING STATUS")
    print(f"  Completed: {status.completed}")
    print(f"  Pending:   {status.pending}")
    print(f"  Total:     {status.total}")
    return EXIT_OK


def run_schema_cli(service: SemanticIndexService, argv: list[str]) -> int:
    """Create tables and indexes."""
    argparse.ArgumentParser(prog="semantic-retrieval schema", description="Create database schema").parse_args(argv)
    service.create_schema()
    print("Schema ready")
    return EXIT_OK


COMMAND_NAMES = ("backfill", "embed", "recommend", "reindex", "schema", "search", "status")


def main(argv: list[str] | None = None) -> int:
    """
    Main CLI entry point with subcommands.

    Usage:
        semantic-retrieval embed "some text" --purpose query
        semantic-retrieval backfill --batch-size 20 --dry-run
        semantic-retrieval recommend DOC_ID --owner USER_ID
        semantic-retrieval search "query" --owner USER_ID --passages
        semantic-retrieval reindex DOC_ID
        semantic-retrieval status
        semantic-retrieval schema
    """
    _load_env()

    parser = argparse.ArgumentParser(
        description="Semantic retrieval pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  embed       Embed a text and show the vector
  backfill    Embed documents that have no summary vector
  recommend   Documents similar to a document
  search      Semantic search by text
  reindex     Rebuild one document's chunks
  status      Pending / completed embedding counts
  schema      Create database tables and indexes

Examples:
  semantic-retrieval backfill --dry-run        # Estimate cost, save nothing
  semantic-retrieval backfill --all            # Re-embed everything
  semantic-retrieval backfill --chunks         # Chunk documents missing chunks
        """,
    )
    parser.add_argument("command", choices=COMMAND_NAMES, help="Command to run")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the command")

    args = parser.parse_args(argv)

    commands = {
        "embed": run_embed_cli,
        "backfill": run_backfill_cli,
        "recommend": run_recommend_cli,
        "search": run_search_cli,
        "reindex": run_reindex_cli,
        "status": run_status_cli,
        "schema": run_schema_cli,
    }

    _configure_logging(args.verbose)
    init_tracing()

    service = None
    try:
        service = build_service()
        return commands[args.command](service, args.args)
    except SemanticRetrievalError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        return _exit_code_for(e)
    except ValidationError as e:
        for err in e.errors():
            field = ".".join(str(part) for part in err["loc"]) or "input"
            print(f"Invalid {field}: {err['msg']}", file=sys.stderr)
        return EXIT_INVALID_INPUT
    except KeyboardInterrupt:
        print("\nInterrupted")
        return EXIT_INTERRUPTED
    finally:
        if service is not None:
            service.close()
        shutdown_tracing()


if __name__ == "__main__":
    sys.exit(main())
