"""
Command-line entry point for the ingestion pipeline.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from gearshelf.config import DEFAULT_CONFIG_FILE, load_config
from gearshelf.errors import DuplicateConflict, InvalidProductUrl, PipelineError
from gearshelf.ingestion.orchestrator import IngestionOrchestrator
from gearshelf.models import CommitSelection, MatchOutcome, PreviewResult, RefreshReport

OUTCOME_LABELS = {
    MatchOutcome.DUPLICATE: "Already in your collection",
    MatchOutcome.OFFICIAL_AVAILABLE: "Official catalog entry available",
    MatchOutcome.NEW: "New product",
}


def print_preview(result: PreviewResult) -> None:
    metadata = result.metadata
    report = result.match_report

    print(f"\n{metadata.title}")
    print(f"  ├─ ASIN: {result.identifier.asin} (amazon.{result.identifier.locale})")
    print(f"  ├─ Image: {metadata.image_url}")
    print(f"  ├─ Category: {result.detected_category.value}")
    print(f"  ├─ Source: {metadata.provider_used}")
    if metadata.provider_used != 'pa-api':
        print("  │    (fetched via fallback metadata, may be less precise)")

    attributes = result.normalized_attributes.to_dict()
    if attributes:
        print(f"  ├─ Attributes ({len(attributes)}):")
        for name, value in attributes.items():
            print(f"  │    {name}: {value}")

    print(f"  ├─ Status: {OUTCOME_LABELS[report.outcome]}")
    if report.catalog_entry is not None:
        print(f"  ├─ Catalog entry: #{report.catalog_entry.id} {report.catalog_entry.name}")
    print(f"  └─ Other users with this product: {report.other_users_count}")


def print_refresh(report: RefreshReport) -> None:
    print(f"\nRefreshed {report.total} entries")
    print(f"  ├─ Succeeded: {report.success_count}")
    print(f"  └─ Failed: {report.failed_count}")
    for failure in report.failures:
        print(f"       ✗ {failure.identifier}: {failure.error}")


async def run_preview(orchestrator: IngestionOrchestrator, args) -> int:
    result = await orchestrator.preview(args.url, args.actor, category=args.category)
    print_preview(result)
    return 0


async def run_add(orchestrator: IngestionOrchestrator, args) -> int:
    result = await orchestrator.preview(args.url, args.actor, category=args.category)
    print_preview(result)

    selection = CommitSelection(
        actor_id=args.actor,
        identifier=result.identifier,
        category=result.detected_category,
        attributes=result.normalized_attributes,
        accept_official=not args.custom,
        metadata=result.metadata,
        note=args.note,
        associate_tag=orchestrator.config.amazon_partner_tag,
    )
    entry = await orchestrator.commit(selection, attempt=result.attempt)
    print(f"\n✓ Added {entry.identifier} as {entry.kind.value} entry #{entry.id}")
    return 0


async def run_refresh(orchestrator: IngestionOrchestrator, args) -> int:
    if args.custom:
        report = await orchestrator.refresh_custom_snapshots()
    else:
        report = await orchestrator.refresh_all(stale_after_hours=args.stale_hours)
    print_refresh(report)
    return 0


async def run_candidates(orchestrator: IngestionOrchestrator, args) -> int:
    candidates = await orchestrator.find_promotion_candidates(args.min_users)
    if not candidates:
        print("No promotion candidates")
        return 0

    print(f"\n{len(candidates)} promotion candidates:")
    for candidate in candidates:
        print(f"  ├─ {candidate.identifier.asin} [{candidate.category.value}] "
              f"{candidate.title} ({candidate.user_count} users)")
    return 0


COMMANDS = {
    'preview': run_preview,
    'add': run_add,
    'refresh': run_refresh,
    'candidates': run_candidates,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='gearshelf',
        description="Amazon product ingestion pipeline: preview, add and refresh gear",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview a product for an actor
  gearshelf preview https://amzn.asia/d/abc1234 --actor user-1

  # Add it as a custom entry even if an official one exists
  gearshelf add https://www.amazon.co.jp/dp/B09NWGDJZH --actor user-1 --custom

  # Refresh catalog entries not updated for a day
  gearshelf refresh --stale-hours 24
        """
    )
    parser.add_argument('--config', '-c', default=DEFAULT_CONFIG_FILE,
                        help=f'Pipeline config JSON (default: {DEFAULT_CONFIG_FILE})')
    parser.add_argument('--env-file', default=None, help='Optional .env file with credentials')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    preview = subparsers.add_parser('preview', help='Resolve and match a URL without saving')
    preview.add_argument('url')
    preview.add_argument('--actor', required=True, help='Actor (user) id')
    preview.add_argument('--category', choices=['mouse', 'keyboard'], default=None)

    add = subparsers.add_parser('add', help='Preview and add a URL to the actor\'s collection')
    add.add_argument('url')
    add.add_argument('--actor', required=True, help='Actor (user) id')
    add.add_argument('--category', choices=['mouse', 'keyboard'], default=None)
    add.add_argument('--note', default=None, help='Free-text note for the entry')
    add.add_argument('--custom', action='store_true',
                     help='Create a custom entry even when an official one exists')

    refresh = subparsers.add_parser('refresh', help='Re-fetch metadata for catalog entries')
    refresh.add_argument('--stale-hours', type=float, default=None,
                         help='Only refresh entries not updated for this many hours')
    refresh.add_argument('--custom', action='store_true',
                         help='Refresh custom collection snapshots instead')

    candidates = subparsers.add_parser('candidates', help='List custom products worth promoting')
    candidates.add_argument('--min-users', type=int, default=None,
                            help='Minimum number of actors (default: from config)')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    config = load_config(args.config, env_file=args.env_file)
    orchestrator = IngestionOrchestrator.build_default(config)

    try:
        return asyncio.run(COMMANDS[args.command](orchestrator, args))
    except InvalidProductUrl as e:
        print(f"Not an Amazon product URL: {e.url}")
        return 1
    except DuplicateConflict as e:
        print(f"✗ {e}")
        return 1
    except PipelineError as e:
        print(f"Error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
