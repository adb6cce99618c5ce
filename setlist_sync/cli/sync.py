# =============================================================================
# setlist_sync/cli/sync.py: Operator CLI
# =============================================================================
#
# Runs the same object graph as the API (see main.build_components) without
# starting a web server.  Import status lives in the in-process ephemeral
# store, so `import` waits for its job and prints the final status itself.
#
# Usage examples:
#   python -m setlist_sync.cli import K8vZ9171ob7
#   python -m setlist_sync.cli trending artist --window 72 --limit 10
#   python -m setlist_sync.cli refresh --window 168
# =============================================================================

"""Standalone CLI for running imports and trending jobs.

Usage::

    python -m setlist_sync.cli import <attraction-id>

    python -m setlist_sync.cli trending {artist,show} [--window HOURS]
        [--votes W] [--attendees W] [--recency W] [--limit N]

    python -m setlist_sync.cli refresh [--window HOURS]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any

from setlist_sync.config.settings import Settings
from setlist_sync.models.entities import EntityType
from setlist_sync.models.trending import TrendingWeights
from setlist_sync.utils.errors import ImportInProgressError, SetlistSyncError


async def _with_components(app_settings: Settings, handler, args: argparse.Namespace) -> int:  # noqa: ANN001
    # Deferred so `--help` does not pay for building providers.
    from setlist_sync.main import build_components

    components = build_components(app_settings)
    await components["storage"].initialize()
    try:
        return await handler(components, args)
    finally:
        await components["http_client"].aclose()


async def _handle_import(components: dict[str, Any], args: argparse.Namespace) -> int:
    coordinator = components["coordinator"]
    try:
        accepted = await coordinator.start_ingestion(args.attraction_id)
    except ImportInProgressError as exc:
        print(f"Import already running: {exc.message}")
        return 1

    print(f"Importing attraction {accepted.provider_artist_id}")
    print(f"  Artist ID: {accepted.artist_id}")
    print(f"  Job ID:    {accepted.job_id}")

    await coordinator.wait_idle()
    status = await coordinator.get_status(accepted.artist_id)
    if status is None:
        print("No status recorded for the job.")
        return 1

    print(f"\nImport {status.stage.value}: {status.message}")
    print(f"  Songs:     {status.total_songs}")
    print(f"  Shows:     {status.total_shows}")
    print(f"  Venues:    {status.total_venues}")
    print(f"  Setlists:  {status.total_setlists}")
    for skipped in status.skipped_records:
        print(f"  Skipped:   {skipped}")
    if status.error:
        print(f"  Error:     {status.error}")
    return 0 if status.stage.value == "completed" else 1


async def _handle_trending(components: dict[str, Any], args: argparse.Namespace) -> int:
    defaults: TrendingWeights = components["default_weights"]
    weights = TrendingWeights(
        votes=defaults.votes if args.votes is None else args.votes,
        attendees=defaults.attendees if args.attendees is None else args.attendees,
        recency=defaults.recency if args.recency is None else args.recency,
    )
    window = args.window or components["default_window_hours"]
    results = await components["coordinator"].compute_trending(
        EntityType(args.entity_type), window, weights, limit=args.limit
    )

    print(f"Trending {args.entity_type}s over {window:g}h")
    print("=" * 60)
    if not results:
        print("  No entities to rank.")
    for result in results:
        print(
            f"  {result.rank:>3}. {result.entity_id:<34} "
            f"score={result.score:<10g} growth={result.weekly_growth:+.1%}"
        )
    return 0


async def _handle_refresh(components: dict[str, Any], args: argparse.Namespace) -> int:
    trending = components["trending"]
    window = args.window or components["default_window_hours"]
    for entity_type in (EntityType.ARTIST, EntityType.SHOW):
        snapshots = await trending.snapshot_period(entity_type)
        results = await trending.refresh_scores(
            entity_type, window, components["default_weights"]
        )
        print(
            f"{entity_type.value}: {len(snapshots)} snapshot(s), "
            f"{len(results)} score(s) refreshed"
        )
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the setlist-sync CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m setlist_sync.cli",
        description="Import artists and compute trending rankings.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    import_parser = subparsers.add_parser("import", help="Import one Ticketmaster attraction")
    import_parser.add_argument("attraction_id", help="Ticketmaster attraction id")

    trending_parser = subparsers.add_parser("trending", help="Print trending rankings")
    trending_parser.add_argument("entity_type", choices=[e.value for e in EntityType])
    trending_parser.add_argument("--window", type=float, default=None, help="Window in hours")
    trending_parser.add_argument("--votes", type=float, default=None, help="Vote weight")
    trending_parser.add_argument("--attendees", type=float, default=None, help="Attendance weight")
    trending_parser.add_argument("--recency", type=float, default=None, help="Recency weight")
    trending_parser.add_argument("--limit", type=int, default=20, help="Rows to print")

    refresh_parser = subparsers.add_parser(
        "refresh", help="Snapshot the current week and write scores back"
    )
    refresh_parser.add_argument("--window", type=float, default=None, help="Window in hours")

    return parser


_HANDLERS = {
    "import": _handle_import,
    "trending": _handle_trending,
    "refresh": _handle_refresh,
}


def main(argv: list[str] | None = None) -> int:
    """CLI entry point; returns the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = Settings()
    try:
        return asyncio.run(_with_components(app_settings, _HANDLERS[args.command], args))
    except (SetlistSyncError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
