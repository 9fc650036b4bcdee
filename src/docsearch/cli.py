"""Command-line entry point: build, query and inspect an index.

Examples::

    docsearch index docs.jsonl --index docs.sqlite --rebuild
    docsearch search "sqlite wal" --index docs.sqlite --limit 5
    docsearch stats --index docs.sqlite

Results are written to stdout as JSON; logs go to stderr.
"""

from __future__ import annotations

import argparse
from collections.abc import Iterator, Sequence
from dataclasses import asdict
import logging
from pathlib import Path
import sys
from typing import Any

import orjson
from pydantic import ValidationError

from docsearch import __version__
from docsearch.config import Settings
from docsearch.observability.logging import configure_logging
from docsearch.search.errors import IndexNotFound, MalformedInput, SearchError
from docsearch.search.search_index import SearchIndex


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def _non_negative_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if parsed < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {parsed}")
    return parsed


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docsearch", description="Index documents and run keyword searches.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser("index", help="Index a JSON Lines file of documents")
    index_parser.add_argument("input", type=Path, help="JSONL file, one {id, title, body, url} object per line")
    index_parser.add_argument("--index", type=Path, help="Index file (defaults to DOCSEARCH_INDEX_PATH)")
    index_parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Replace the whole index with the input instead of updating it",
    )

    search_parser = subparsers.add_parser("search", help="Query an existing index")
    search_parser.add_argument("query", help="Free-text query")
    search_parser.add_argument("--index", type=Path, help="Index file (defaults to DOCSEARCH_INDEX_PATH)")
    search_parser.add_argument("--limit", type=_non_negative_int, help="Maximum results (0 = all)")
    search_parser.add_argument("--snippet-length", type=_non_negative_int, help="Maximum snippet length")

    stats_parser = subparsers.add_parser("stats", help="Show index statistics")
    stats_parser.add_argument("--index", type=Path, help="Index file (defaults to DOCSEARCH_INDEX_PATH)")
    return parser


def read_jsonl(path: Path) -> Iterator[dict[str, Any]]:
    """Yield one document mapping per non-blank line of ``path``."""
    with path.open("rb") as handle:
        for line_number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                payload = orjson.loads(line)
            except orjson.JSONDecodeError as exc:
                raise MalformedInput(f"{path}:{line_number}: invalid JSON: {exc}") from exc
            if not isinstance(payload, dict):
                raise MalformedInput(f"{path}:{line_number}: expected a JSON object")
            yield payload


def _emit(payload: Any) -> None:
    sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8"))
    sys.stdout.write("\n")
    sys.stdout.flush()


def _run_index(args: argparse.Namespace, settings: Settings) -> int:
    if not args.input.is_file():
        logger.error("Input file not found: %s", args.input)
        return EXIT_FAILURE
    index, created = SearchIndex.open_or_create(args.index, settings)
    with index:
        if created:
            logger.info("Created new index at %s", index.path)
        result = index.index_documents(read_jsonl(args.input), rebuild=args.rebuild)
        _emit({"index": str(index.path), "created": created, **asdict(result)})
    return EXIT_OK


def _run_search(args: argparse.Namespace, settings: Settings) -> int:
    with SearchIndex.open(args.index, settings) as index:
        response = index.search(args.query, args.limit, snippet_length=args.snippet_length)
        _emit(response.model_dump())
    return EXIT_OK


def _run_stats(args: argparse.Namespace, settings: Settings) -> int:
    with SearchIndex.open(args.index, settings) as index:
        _emit(index.stats().model_dump())
    return EXIT_OK


_COMMANDS = {
    "index": _run_index,
    "search": _run_search,
    "stats": _run_stats,
}


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings()
    except ValidationError as exc:
        sys.stderr.write(f"Invalid configuration: {exc}\n")
        return EXIT_USAGE

    configure_logging(settings.log_level, settings.log_json, stream=sys.stderr)

    try:
        return _COMMANDS[args.command](args, settings)
    except IndexNotFound as exc:
        logger.error("%s; run 'docsearch index' first", exc)
        return EXIT_FAILURE
    except (SearchError, OSError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
