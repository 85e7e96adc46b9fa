#!/usr/bin/env python
"""Command line entry point: query a JSON note snapshot."""
import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Sequence

from notelens import __version__
from notelens.config import config
from notelens.exceptions import NotelensError
from notelens.models.schema import SearchMode, SearchResult
from notelens.observability import configure_logging, metrics
from notelens.services.search_service import SearchService
from notelens.storage.json_store import JsonSnapshotStore

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="notelens", description="Hybrid search over a note snapshot"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--snapshot",
        help="JSON file with 'notes' and 'links'",
        type=str,
        default=os.environ.get("NOTELENS_SNAPSHOT"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTELENS_LOG_LEVEL", "WARNING"),
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=str(config.log_dir) if config.log_dir else None,
    )
    parser.add_argument("--scope", help="User scope for the stores", default=None)
    parser.add_argument(
        "--metrics-file",
        help="Write operation metrics (timings, cache and semantic outcomes) as JSON",
        type=str,
        default=os.environ.get("NOTELENS_METRICS_FILE"),
    )

    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Search notes")
    search.add_argument("query", nargs="?", default="", help="Query text, e.g. '#work alpha'")
    search.add_argument(
        "--mode",
        choices=[m.value for m in (SearchMode.COMBINED, SearchMode.TEXT, SearchMode.TAGS)],
        default=SearchMode.COMBINED.value,
    )
    search.add_argument("--limit", type=int, default=None)
    search.add_argument("--note-id", help="Current note for shared connections", default=None)

    similar = sub.add_parser("similar", help="Notes sharing connections with a note")
    similar.add_argument("note_id")
    similar.add_argument("--limit", type=int, default=None)

    connected = sub.add_parser("connected", help="Most connected notes")
    connected.add_argument("--limit", type=int, default=10)

    sub.add_parser("orphans", help="Notes without links")
    return parser.parse_args(argv)


def _setup_logging(args: argparse.Namespace) -> None:
    log_level = getattr(logging, args.log_level.upper(), logging.WARNING)
    if not args.log_dir:
        logging.basicConfig(level=log_level, stream=sys.stderr)
        return
    try:
        configure_logging(log_dir=args.log_dir, level=log_level, console=False)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level, stream=sys.stderr)
        logger.warning(f"Failed to configure file logging: {e}")


def _result_to_dict(result: SearchResult) -> Dict[str, Any]:
    data = {
        "id": result.note_id,
        "title": result.note.title,
        "score": round(result.score, 4),
        "tier": result.tier.value if result.tier else None,
        "search_type": result.search_type.value,
        "matched_tags": result.matched_tags,
    }
    if result.link_context is not None:
        data["connections"] = result.link_context.total_connections
    return data


def run(args: argparse.Namespace) -> Any:
    """Execute one subcommand and return its JSON-serializable output."""
    if not args.snapshot:
        raise NotelensError("No snapshot given (use --snapshot or NOTELENS_SNAPSHOT)")
    store = JsonSnapshotStore(args.snapshot)
    service = SearchService(store, store, user_scope=args.scope)
    try:
        if config.cache_path:
            service.cache.load(config.cache_path)

        if args.command == "search":
            response = service.search_text(
                args.query,
                mode=SearchMode(args.mode),
                note_id=args.note_id,
                limit=args.limit,
            )
            if config.cache_path:
                service.cache.save(config.cache_path)
            return {
                "search_type": response.search_type.value,
                "from_cache": response.from_cache,
                "cache_outcome": response.cache_outcome,
                "semantic_fallback": response.semantic_fallback,
                "total_notes": response.metrics.total_notes,
                "results": [_result_to_dict(r) for r in response.results],
            }
        if args.command == "similar":
            return [s.model_dump() for s in service.find_similar(args.note_id, args.limit)]
        if args.command == "connected":
            return [h.model_dump() for h in service.most_connected(args.limit)]
        if args.command == "orphans":
            return [{"id": n.id, "title": n.title} for n in service.orphaned_notes()]
        raise NotelensError(f"Unknown command: {args.command}")
    finally:
        service.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    """Run the notelens command line."""
    args = parse_args(argv)
    _setup_logging(args)
    try:
        output = run(args)
    except NotelensError as e:
        print(json.dumps(e.to_dict()), file=sys.stderr)
        return 1
    finally:
        if args.metrics_file:
            metrics.save_metrics(args.metrics_file)
    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
