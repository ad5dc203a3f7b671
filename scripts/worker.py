"""Long-running feed worker.

Polls every enabled feed on its own cadence, publishes new entries to the
bus topic and records them in the ledger. Stops gracefully on SIGINT/SIGTERM.

Usage:
    python scripts/worker.py [--feeds config/feeds.json]

Environment Variables:
    DATABASE_URL / SIEVE_DATABASE_URL: ledger database (SQLite or PostgreSQL)
    SIEVE_BUS_BOOTSTRAP_SERVERS: Kafka bootstrap servers
    SIEVE_BUS_TOPIC_NAME: topic new entries are published to
"""

import argparse
import asyncio
import os
import signal
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from sieve.config.feeds import load_feeds
from sieve.config.settings import settings
from sieve.log import configure_logging
from sieve.pipeline.coordinator import PipelineCoordinator
from sieve.publishing.kafka_bus import KafkaBus
from sieve.storage.factory import get_ledger

logger = structlog.get_logger()


async def main(feeds_path: str = None) -> int:
    """Main entry point."""
    feeds = load_feeds(feeds_path)
    coordinator = PipelineCoordinator(
        feeds=feeds,
        ledger=get_ledger(),
        bus=KafkaBus(),
    )

    stop_event = asyncio.Event()

    # Handle graceful shutdown
    def signal_handler(signum):
        logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
        stop_event.set()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, signal_handler, signum)

    clean = await coordinator.run_until_stopped(stop_event)
    return 0 if clean else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the feed worker")
    parser.add_argument("--feeds", help="path to feeds.json", default=None)
    args = parser.parse_args()

    configure_logging(settings.log_level, settings.log_json)
    sys.exit(asyncio.run(main(args.feeds)))
