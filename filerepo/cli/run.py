"""Command-line entry point for scheduled imports and index inspection.

Usage::

    python -m filerepo.cli.run import
    python -m filerepo.cli.run import --steps import --sources aws,collab
    python -m filerepo.cli.run search "DO50311" --limit 5
    python -m filerepo.cli.run search "PACA-CA" --type donor
    python -m filerepo.cli.run stats

``import`` exits with status 1 when the report lists any exception, so a
scheduler can alert on degraded runs; the report itself is also sent to
the configured notifier.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from filerepo.config.settings import Settings
from filerepo.models.pipeline import ALL_STEPS, RunStep
from filerepo.services.document_transformer import (
    DOCUMENT_TYPES,
    DONOR_DOCUMENT_TYPE,
    FILE_DOCUMENT_TYPE,
    REPOSITORY_DOCUMENT_TYPE,
)
from filerepo.utils.errors import ConfigurationError


def _parse_steps(value: str) -> frozenset[RunStep]:
    try:
        return frozenset(RunStep(part.strip().upper()) for part in value.split(",") if part.strip())
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"unknown step in {value!r}") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m filerepo.cli.run",
        description="Import file metadata from every configured repository and reindex.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- import --
    import_parser = subparsers.add_parser("import", help="Run the import and indexing steps")
    import_parser.add_argument(
        "--steps",
        type=_parse_steps,
        default=ALL_STEPS,
        help="Comma-separated steps to run (import,index; default: both)",
    )
    import_parser.add_argument(
        "--sources",
        default=None,
        help="Comma-separated source tags to import (default: ACTIVE_SOURCES or all)",
    )
    import_parser.add_argument(
        "--concurrent",
        action="store_true",
        help="Import the sources concurrently",
    )

    # -- search --
    search_parser = subparsers.add_parser("search", help="Query the live search index")
    search_parser.add_argument("text", nargs="?", default="", help="Free text to match")
    search_parser.add_argument("--limit", type=int, default=20, help="Maximum hits")
    search_parser.add_argument(
        "--type",
        dest="doc_type",
        choices=list(DOCUMENT_TYPES),
        default=FILE_DOCUMENT_TYPE,
        help="Document type to search (default: file)",
    )

    # -- stats --
    subparsers.add_parser("stats", help="Show store and index counts")
    return parser


async def _handle_import(args: argparse.Namespace, app_settings: Settings) -> int:
    from filerepo.main import run_import

    if args.concurrent:
        app_settings = app_settings.model_copy(update={"concurrent_sources": True})
    sources = None
    if args.sources is not None:
        sources = [s.strip() for s in args.sources.split(",") if s.strip()]

    try:
        report = await run_import(app_settings, steps=args.steps, active_sources=sources)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    print(report.subject)
    print(report.body)
    return 0 if report.success else 1


async def _handle_search(args: argparse.Namespace, app_settings: Settings) -> int:
    from filerepo.main import build_search_index

    search_index = build_search_index(app_settings)
    await search_index.initialize()
    hits = await search_index.search(
        app_settings.index_alias, text=args.text, limit=args.limit, doc_type=args.doc_type
    )
    for hit in hits:
        print(json.dumps(hit, sort_keys=True))
    print(f"{len(hits)} hit(s)", file=sys.stderr)
    return 0


async def _handle_stats(app_settings: Settings) -> int:
    from filerepo.main import build_document_store, build_search_index

    try:
        store = build_document_store(app_settings)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    search_index = build_search_index(app_settings)
    await store.initialize()
    await search_index.initialize()

    generation = await search_index.get_alias(app_settings.index_alias)
    print("Repository Statistics")
    print("=" * 40)
    print(f"  Stored files:     {await store.count(app_settings.store_collection)}")
    print(f"  Alias:            {app_settings.index_alias}")
    print(f"  Live generation:  {generation or '-'}")
    if generation:
        print(f"  Indexed files:    {await search_index.count(app_settings.index_alias)}")
        donors = await search_index.count(app_settings.index_alias, DONOR_DOCUMENT_TYPE)
        repositories = await search_index.count(
            app_settings.index_alias, REPOSITORY_DOCUMENT_TYPE
        )
        print(f"  Indexed donors:   {donors}")
        print(f"  Repositories:     {repositories}")
    generations = await search_index.list_indices(prefix=f"{app_settings.index_alias}_")
    print(f"  Generations:      {len(generations)}")
    return 0


def main() -> None:
    """Parse the command line and dispatch to the matching handler."""
    parser = _build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()

    if args.command == "import":
        exit_code = asyncio.run(_handle_import(args, app_settings))
    elif args.command == "search":
        exit_code = asyncio.run(_handle_search(args, app_settings))
    elif args.command == "stats":
        exit_code = asyncio.run(_handle_stats(app_settings))
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
