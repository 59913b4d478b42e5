"""Manual ingestion runner for testing and debugging sources.

Runs the orchestrator against the configured database, either for every
source, for a single source, or for the popular search terms.

Usage:
    python scripts/run_scraper.py --term sandals
    python scripts/run_scraper.py --term sandals --source "The Iconic"
    python scripts/run_scraper.py --term slides --healthy-only
    python scripts/run_scraper.py --popular
"""

import argparse
import asyncio
import os
import sys

# Add backend to path so we can import pricetrail without installing it
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from pricetrail.core.logging import configure_logging
from pricetrail.db.session import async_session_factory, engine
from pricetrail.models import Base
from pricetrail.scrapers.register_adapters import register_all_adapters
from pricetrail.scrapers.orchestrator import IngestionOrchestrator


async def run(args: argparse.Namespace) -> int:
    """Run the requested ingestion and print a summary.

    Returns:
        Process exit code
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = register_all_adapters()
    orchestrator = IngestionOrchestrator(
        async_session_factory,
        adapter_factory=factory,
        inter_source_delay=args.delay,
    )

    try:
        if args.popular:
            results = await orchestrator.run_popular_terms()
            for term, per_source in results.items():
                _print_results(term, per_source)
            return 0

        if args.source:
            try:
                count = await orchestrator.run_source(args.source, args.term, args.limit)
            except ValueError as e:
                print(f"\nError: {e}")
                print("\nAvailable sources:")
                for name in orchestrator.build_registry().names():
                    print(f"   - {name}")
                return 2
            _print_results(args.term, {args.source: count})
            return 0

        if args.healthy_only:
            results = await orchestrator.run_healthy_sources(args.term, max_items=args.limit)
        else:
            results = await orchestrator.run_all_sources(args.term, max_items=args.limit)
        _print_results(args.term, results)
        return 0 if orchestrator.state.value == "completed" else 1

    finally:
        await factory.close()
        await engine.dispose()


def _print_results(term: str, results: dict) -> None:
    print(f"\n{'=' * 60}")
    print(f"  '{term}'")
    print(f"{'=' * 60}")
    for source, count in results.items():
        print(f"  {source:<30} {count:>5} new items")
    print(f"  {'Total':<30} {sum(results.values()):>5}")
    print(f"{'=' * 60}\n")


def main():
    """Parse arguments and run the ingestion."""
    parser = argparse.ArgumentParser(
        description="Run PriceTrail ingestion manually",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_scraper.py --term sandals
  python scripts/run_scraper.py --term sandals --source "Birds Nest"
  python scripts/run_scraper.py --popular
        """,
    )

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--term", help="Search term to run (e.g., 'sandals')")
    target.add_argument(
        "--popular",
        action="store_true",
        help="Run every configured popular search term",
    )

    parser.add_argument("--source", help="Run a single source by name (e.g., 'The Iconic')")
    parser.add_argument(
        "--healthy-only",
        action="store_true",
        help="Skip sources failing their health check",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum items per source (default: SCRAPE_BATCH_LIMIT, or HEALTHY_BATCH_LIMIT with --healthy-only)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=5.0,
        help="Seconds to wait between sources (default: 5)",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")

    args = parser.parse_args()
    if args.source and args.popular:
        parser.error("--source cannot be combined with --popular")

    configure_logging(level=args.log_level)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
