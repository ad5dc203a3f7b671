#!/usr/bin/env python3
"""Run a single cycle for every enabled feed and print a summary."""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sieve.config.feeds import load_feeds
from sieve.config.settings import settings
from sieve.log import configure_logging
from sieve.pipeline.coordinator import PipelineCoordinator
from sieve.pipeline.interfaces import CycleStatus
from sieve.publishing.kafka_bus import KafkaBus
from sieve.storage.factory import get_ledger


def main():
    parser = argparse.ArgumentParser(description="Poll every feed once")
    parser.add_argument("--feeds", help="path to feeds.json", default=None)
    args = parser.parse_args()

    configure_logging(settings.log_level, settings.log_json)

    ledger = get_ledger()
    coordinator = PipelineCoordinator(
        feeds=load_feeds(args.feeds),
        ledger=ledger,
        bus=KafkaBus(),
    )

    print("\n" + "=" * 50)
    print("FEED SIEVE - SINGLE CYCLE")
    print("=" * 50 + "\n")

    results = asyncio.run(coordinator.run_once())

    print("RESULTS:")
    for result in results:
        line = f"  {result.feed_id:<24} {result.status.value:<8}"
        if result.unchanged:
            line += " unchanged"
        else:
            line += f" seen={result.entries_seen} new={result.entries_new} published={result.entries_published}"
        if result.error:
            line += f"  error: {result.error}"
        print(line)

    stats = ledger.get_stats()
    print(f"\nLEDGER: {stats['total_records']} records across {len(stats['records_per_feed'])} feeds\n")

    failed = [r for r in results if r.status is CycleStatus.FAILURE]
    return 1 if failed and len(failed) == len(results) else 0


if __name__ == "__main__":
    sys.exit(main())
