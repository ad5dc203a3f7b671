"""Process-lifetime owner of the pipeline."""

import asyncio
from typing import List, Optional

import structlog

from .interfaces import CycleStatus, PollCycleResult
from .scheduler import FeedScheduler
from ..config.settings import settings
from ..errors import StorageUnavailable, TransportError
from ..ingestion.fetcher import FeedFetcher
from ..ingestion.http import HttpClient
from ..ingestion.interfaces import FeedConfig, HttpClientInterface, ParserInterface
from ..ingestion.parser import FeedParser
from ..publishing.interfaces import BusInterface
from ..publishing.publisher import Publisher
from ..storage.interfaces import LedgerInterface

logger = structlog.get_logger()


class PipelineCoordinator:
    """Starts and stops the feed loops and reports health."""

    def __init__(
        self,
        feeds: List[FeedConfig],
        ledger: LedgerInterface,
        bus: BusInterface,
        http: HttpClientInterface = None,
        parser: ParserInterface = None,
        publisher: Publisher = None,
        fetcher: FeedFetcher = None,
        grace_period: float = None,
        health_interval: float = None,
    ):
        self.feeds = [f for f in feeds if f.enabled]
        self.ledger = ledger
        self.bus = bus
        self.http = http or HttpClient()
        self.publisher = publisher or Publisher(bus)
        self.scheduler = FeedScheduler(
            feeds=self.feeds,
            fetcher=fetcher or FeedFetcher(self.http),
            parser=parser or FeedParser(),
            ledger=ledger,
            publisher=self.publisher,
        )
        self.grace_period = grace_period if grace_period is not None else settings.shutdown_grace_period_seconds
        self.health_interval = health_interval or settings.health_log_interval_seconds

        self.running = False
        self._health_task: Optional[asyncio.Task] = None

        skipped = len(feeds) - len(self.feeds)
        logger.info("coordinator_initialized", feeds=len(self.feeds), disabled=skipped)

    async def start(self) -> None:
        """Connect the capabilities and launch every feed loop."""
        if self.running:
            return
        await self.http.open()
        await self._start_bus()
        self.scheduler.start()
        self._health_task = asyncio.create_task(self._health_loop(), name="health")
        self.running = True
        logger.info("pipeline_started", feeds=[f.feed_id for f in self.feeds])

    async def stop(self) -> bool:
        """Stop gracefully.

        No new cycles start; in-flight ones get the grace period to finish
        their current entry. Returns True when every loop reached a clean
        boundary, False if some had to be cancelled.
        """
        if not self.running:
            return True
        logger.info("pipeline_stopping", in_flight=self.scheduler.in_flight())

        self.scheduler.request_stop()
        if self._health_task:
            self._health_task.cancel()
            await asyncio.gather(self._health_task, return_exceptions=True)
            self._health_task = None

        clean = await self.scheduler.wait_stopped(self.grace_period)

        try:
            await self.bus.stop()
        finally:
            await self.http.close()

        self.running = False
        logger.info("pipeline_stopped", clean=clean, publisher=self.publisher.get_stats())
        return clean

    async def run_until_stopped(self, stop_event: asyncio.Event) -> bool:
        """Run until stop_event is set, then shut down."""
        await self.start()
        try:
            await stop_event.wait()
        finally:
            clean = await self.stop()
        return clean

    async def run_once(self) -> List[PollCycleResult]:
        """Run a single cycle for every feed concurrently, without the loops."""
        await self.http.open()
        await self._start_bus()
        try:
            return list(await asyncio.gather(
                *(self.scheduler.run_cycle(state) for state in self.scheduler.states.values())
            ))
        finally:
            try:
                await self.bus.stop()
            finally:
                await self.http.close()

    async def _start_bus(self) -> None:
        """Connect the bus, tolerating a broker that is down at boot.

        Sends connect on demand, so entries fail and are retried per cycle
        until the broker is reachable.
        """
        try:
            await self.bus.start()
        except TransportError as e:
            logger.warning("bus_unavailable_at_start", error=str(e))

    async def health(self) -> dict:
        """Aggregate per-feed state, ledger reachability and publisher stats."""
        ledger_ok = True
        ledger_error = None
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.ledger.ping),
                timeout=settings.storage_timeout_seconds,
            )
        except (StorageUnavailable, asyncio.TimeoutError) as e:
            ledger_ok = False
            ledger_error = str(e) or "timeout"

        feeds = {}
        degraded = False
        for feed_id, state in self.scheduler.states.items():
            last = state.last_result
            if state.consecutive_failures or (last and last.status is not CycleStatus.SUCCESS):
                degraded = True
            feeds[feed_id] = {
                "url": state.url,
                "stage": state.stage.value,
                "interval": state.current_interval,
                "consecutive_failures": state.consecutive_failures,
                "success_rate": round(state.success_rate, 3),
                "avg_fetch_time_ms": state.avg_fetch_time_ms,
                "entries_published": state.entries_published,
                "last_success_at": state.last_success_at.isoformat() if state.last_success_at else None,
                "last_result": last.to_dict() if last else None,
            }

        if not ledger_ok:
            status = "unhealthy"
        elif degraded:
            status = "degraded"
        else:
            status = "ok"

        return {
            "status": status,
            "running": self.running,
            "ledger": {"ok": ledger_ok, "error": ledger_error},
            "publisher": self.publisher.get_stats(),
            "feeds": feeds,
        }

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.health_interval)
            try:
                report = await self.health()
            except Exception:
                logger.exception("pipeline_health_failed")
                continue
            failing = [fid for fid, f in report["feeds"].items() if f["consecutive_failures"]]
            log = logger.info if report["status"] == "ok" else logger.warning
            log(
                "pipeline_health",
                status=report["status"],
                ledger_ok=report["ledger"]["ok"],
                failing_feeds=failing,
                published=report["publisher"]["published"],
            )
