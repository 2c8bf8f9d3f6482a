"""Operator command line for the error memory.

Usage:
    python -m errormem capture "TypeError: Cannot read property 'x' of undefined" --project web
    python -m errormem solution 12 "Guard the access with optional chaining"
    python -m errormem outcome 4 --success
    python -m errormem search "Cannot read property 'y' of undefined" --limit 5
    python -m errormem relevant --title "Add login form" --error "Module not found"
    python -m errormem stats

Every command prints JSON to stdout; logs go to stderr.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from errormem import service
from errormem.context_builder import build_memory_summary
from errormem.errors import MemoryLayerError
from errormem.models import ErrorInput, SearchOptions, SolutionInput, TaskContext
from errormem.search.retrieval import find_by_tags, find_similar, group_by_match_type
from errormem.service_state import ServiceState
from errormem.utils.tags import _normalize_tag_list

logger = logging.getLogger("errormem.cli")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _cmd_capture(state: ServiceState, args: argparse.Namespace) -> Any:
    error_id = service.capture_error(
        state,
        ErrorInput(
            message=args.message,
            error_type=args.type,
            severity=args.severity,
            stack_trace=args.stack_trace,
            file_path=args.file,
            project_name=args.project,
            tags=_normalize_tag_list(args.tags),
        ),
    )
    record = state.store.get_error(error_id)
    return record.to_dict() if record else {"id": error_id}


def _cmd_solution(state: ServiceState, args: argparse.Namespace) -> Any:
    solution_id = service.capture_solution(
        state,
        SolutionInput(
            error_id=args.error_id,
            content=args.content,
            source=args.source,
            code_snippet=args.code,
            project_name=args.project,
        ),
    )
    return {"solution_id": solution_id, "error_id": args.error_id}


def _cmd_outcome(state: ServiceState, args: argparse.Namespace) -> Any:
    service.report_outcome(state, args.solution_id, args.success)
    solution = state.store.get_solution(args.solution_id)
    return solution.to_dict() if solution else {"solution_id": args.solution_id}


def _cmd_search(state: ServiceState, args: argparse.Namespace) -> Any:
    results = find_similar(
        state,
        args.query,
        SearchOptions(
            limit=args.limit,
            min_similarity=args.min_similarity,
            tags=_normalize_tag_list(args.tags),
            project_name=args.project,
            error_type=args.type,
            severity=args.severity,
        ),
    )
    return {
        "count": len(results),
        "match_types": group_by_match_type(results),
        "results": [r.to_dict() for r in results],
        "summary": build_memory_summary(results),
    }


def _cmd_tags(state: ServiceState, args: argparse.Namespace) -> Any:
    results = find_by_tags(state, _normalize_tag_list(args.tags))
    return {"count": len(results), "results": [r.to_dict() for r in results]}


def _cmd_relevant(state: ServiceState, args: argparse.Namespace) -> Any:
    memory = service.get_relevant_memories(
        state,
        TaskContext(
            feature_title=args.title,
            feature_description=args.description,
            error_message=args.error,
            file_path=args.file,
            project_name=args.project,
            tags=_normalize_tag_list(args.tags),
        ),
    )
    if args.prompt_only:
        return {"prompt": memory.formatted_prompt}
    return memory.to_dict()


def _cmd_stats(state: ServiceState, args: argparse.Namespace) -> Any:
    stats = service.get_stats(state).to_dict()
    stats["database"] = state.store.database_stats()
    return stats


def _cmd_export(state: ServiceState, args: argparse.Namespace) -> Any:
    return service.export_data(state)


def _cmd_backfill(state: ServiceState, args: argparse.Namespace) -> Any:
    return {"embedded": service.backfill_embeddings(state, limit=args.limit)}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="errormem",
        description="Persistent memory of past errors and the fixes that worked",
    )
    parser.add_argument("--db", type=str, help="Path to the SQLite database file")
    parser.add_argument(
        "--embeddings",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable semantic search (default: ERRORMEM_ENABLE_EMBEDDINGS)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    sub = parser.add_subparsers(dest="command", required=True)

    capture = sub.add_parser("capture", help="Record an error sighting")
    capture.add_argument("message")
    capture.add_argument("--type", help="Error category (classified from the message if omitted)")
    capture.add_argument("--severity", choices=["low", "medium", "high", "critical"])
    capture.add_argument("--stack-trace")
    capture.add_argument("--file")
    capture.add_argument("--project")
    capture.add_argument("--tags", help="Comma separated tags")
    capture.set_defaults(handler=_cmd_capture)

    solution = sub.add_parser("solution", help="Attach a solution to an error")
    solution.add_argument("error_id", type=int)
    solution.add_argument("content")
    solution.add_argument("--source", default="manual", choices=["manual", "agent", "auto_mode"])
    solution.add_argument("--code", help="Code snippet for the fix")
    solution.add_argument("--project")
    solution.set_defaults(handler=_cmd_solution)

    outcome = sub.add_parser("outcome", help="Report whether a solution worked")
    outcome.add_argument("solution_id", type=int)
    result = outcome.add_mutually_exclusive_group(required=True)
    result.add_argument("--success", dest="success", action="store_true")
    result.add_argument("--failure", dest="success", action="store_false")
    outcome.set_defaults(handler=_cmd_outcome)

    search = sub.add_parser("search", help="Find errors similar to a message")
    search.add_argument("query")
    search.add_argument("--limit", type=int)
    search.add_argument("--min-similarity", type=float)
    search.add_argument("--tags", help="Comma separated tags (any match)")
    search.add_argument("--project")
    search.add_argument("--type")
    search.add_argument("--severity", choices=["low", "medium", "high", "critical"])
    search.set_defaults(handler=_cmd_search)

    tags = sub.add_parser("tags", help="List errors carrying any of the given tags")
    tags.add_argument("tags", help="Comma separated tags")
    tags.set_defaults(handler=_cmd_tags)

    relevant = sub.add_parser("relevant", help="Build prompt context for a task")
    relevant.add_argument("--title")
    relevant.add_argument("--description")
    relevant.add_argument("--error")
    relevant.add_argument("--file")
    relevant.add_argument("--project")
    relevant.add_argument("--tags", help="Comma separated tags")
    relevant.add_argument("--prompt-only", action="store_true", help="Only print the prompt text")
    relevant.set_defaults(handler=_cmd_relevant)

    sub.add_parser("stats", help="Show aggregate counters").set_defaults(handler=_cmd_stats)
    sub.add_parser("export", help="Dump every error with its solutions").set_defaults(
        handler=_cmd_export
    )

    backfill = sub.add_parser("backfill", help="Embed errors that have no embedding yet")
    backfill.add_argument("--limit", type=int, default=100)
    backfill.set_defaults(handler=_cmd_backfill)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)s | %(message)s",
        stream=sys.stderr,
    )

    enable_embeddings = args.embeddings
    if args.command == "backfill" and enable_embeddings is None:
        enable_embeddings = True

    try:
        state = ServiceState.from_config(
            db_path=Path(args.db) if args.db else None,
            enable_embeddings=enable_embeddings,
        )
    except (MemoryLayerError, RuntimeError, ValueError) as e:
        logger.error("Failed to open memory store: %s", e)
        return 2

    try:
        _print_json(args.handler(state, args))
        return 0
    except MemoryLayerError as e:
        logger.error("%s failed: %s", args.command, e)
        _print_json({"error": str(e), "type": e.__class__.__name__})
        return 1
    finally:
        state.close()
