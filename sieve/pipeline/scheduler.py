"""Per-feed poll loops: fetch, parse, filter, publish, commit."""

import asyncio
import time
from datetime import datetime
from typing import Dict, List, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from .interfaces import CycleStatus, PollCycleResult
from ..config.settings import settings
from ..errors import DuplicateCommit, MalformedFeed, StorageUnavailable, TransportError
from ..ingestion.interfaces import (
    CycleStage,
    FeedConfig,
    FeedState,
    FetchOutcome,
    FetchStatus,
    FetcherInterface,
    ParserInterface,
)
from ..ingestion.normalizer import normalize
from ..publishing.publisher import Publisher
from ..storage.interfaces import LedgerInterface

logger = structlog.get_logger()


class FeedScheduler:
    """Runs one independent loop per feed.

    A feed never has two cycles in flight: its next tick is scheduled
    current_interval seconds after the previous cycle finished. Errors
    stay inside the feed's own loop.
    """

    def __init__(
        self,
        feeds: List[FeedConfig],
        fetcher: FetcherInterface,
        parser: ParserInterface,
        ledger: LedgerInterface,
        publisher: Publisher,
        storage_max_attempts: int = None,
        storage_backoff_base: float = None,
        storage_backoff_cap: float = None,
        storage_timeout: float = None,
        failure_threshold: int = None,
        interval_backoff_factor: float = None,
        max_poll_interval: float = None,
    ):
        self.states: Dict[str, FeedState] = {c.feed_id: FeedState(config=c) for c in feeds}
        self.fetcher = fetcher
        self.parser = parser
        self.ledger = ledger
        self.publisher = publisher

        self.storage_max_attempts = storage_max_attempts or settings.storage_max_attempts
        self.storage_backoff_base = (
            storage_backoff_base if storage_backoff_base is not None else settings.storage_backoff_base
        )
        self.storage_backoff_cap = (
            storage_backoff_cap if storage_backoff_cap is not None else settings.storage_backoff_cap
        )
        self.storage_timeout = storage_timeout or settings.storage_timeout_seconds
        self.failure_threshold = (
            failure_threshold if failure_threshold is not None else settings.failure_threshold
        )
        self.interval_backoff_factor = interval_backoff_factor or settings.interval_backoff_factor
        self.max_poll_interval = max_poll_interval or settings.max_poll_interval_seconds

        self._stopping = asyncio.Event()
        self._tasks: Dict[str, asyncio.Task] = {}

    # Lifecycle

    def start(self) -> None:
        """Launch a loop for every feed."""
        for feed_id, state in self.states.items():
            if feed_id in self._tasks:
                continue
            self._tasks[feed_id] = asyncio.create_task(
                self._feed_loop(state), name=f"feed:{feed_id}"
            )
        logger.info("scheduler_started", feeds=len(self._tasks))

    def request_stop(self) -> None:
        """Stop starting new cycles; fetches are abandoned, publishes finish their entry."""
        self._stopping.set()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def in_flight(self) -> List[str]:
        """Feeds that are mid-cycle."""
        return [s.feed_id for s in self.states.values() if s.stage is not CycleStage.IDLE]

    async def wait_stopped(self, timeout: float) -> bool:
        """Wait for all loops to exit. Returns False if some had to be cancelled."""
        tasks = list(self._tasks.values())
        if not tasks:
            return True

        done, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning(
                "scheduler_grace_expired",
                pending=[t.get_name() for t in pending],
                in_flight=self.in_flight(),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        self._tasks.clear()
        logger.info("scheduler_stopped", clean=not pending)
        return not pending

    async def _feed_loop(self, state: FeedState) -> None:
        while not self._stopping.is_set():
            await self.run_cycle(state)
            if await self._sleep(state.current_interval):
                break

    async def _sleep(self, seconds: float) -> bool:
        """Sleep until the next tick. True if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    # Cycle

    async def run_cycle(self, state: FeedState) -> PollCycleResult:
        """Run one cycle for a feed and record the result on its state."""
        result = PollCycleResult(feed_id=state.feed_id)
        start_time = time.time()

        try:
            await self._run_stages(state, result)
        except Exception as e:
            # Anything unexpected fails this cycle only
            logger.exception("cycle_crashed", feed=state.feed_id, stage=state.stage.value)
            result.fail(f"{type(e).__name__}: {e}")
        finally:
            state.stage = CycleStage.IDLE
            result.elapsed_ms = int((time.time() - start_time) * 1000)
            state.last_result = result

        log = logger.info if result.status is CycleStatus.SUCCESS else logger.warning
        log(
            "cycle_completed",
            feed=state.feed_id,
            status=result.status.value,
            unchanged=result.unchanged,
            seen=result.entries_seen,
            new=result.entries_new,
            published=result.entries_published,
            failed=result.entries_failed,
            error=result.error,
            next_interval=state.current_interval,
            time_ms=result.elapsed_ms,
        )
        return result

    async def _run_stages(self, state: FeedState, result: PollCycleResult) -> None:
        feed_id = state.feed_id

        state.stage = CycleStage.FETCHING
        outcome = await self._fetch_unless_stopped(state)

        if outcome is None:
            result.interrupted = True
            result.fail("stopped during fetch")
            logger.info("fetch_interrupted", feed=feed_id)
            return

        if outcome.status is FetchStatus.ERROR:
            result.fail(f"{outcome.error_kind.value}: {outcome.error}")
            return

        if outcome.status is FetchStatus.UNCHANGED:
            state.record_success()
            result.unchanged = True
            return

        state.stage = CycleStage.PARSING
        try:
            raw_entries = self.parser.parse(outcome.body)
        except MalformedFeed as e:
            state.record_failure(
                self.failure_threshold,
                self.interval_backoff_factor,
                self.max_poll_interval,
            )
            logger.warning("feed_malformed", feed=feed_id, error=str(e))
            result.fail(f"malformed: {e}")
            return

        # Only trust the validators once the body they describe parsed
        state.update_validators(outcome.etag, outcome.last_modified)
        state.record_success()

        entries = [normalize(feed_id, raw) for raw in raw_entries]
        result.entries_seen = len(entries)

        for index, entry in enumerate(entries):
            if self._stopping.is_set():
                result.interrupted = True
                logger.info("cycle_interrupted", feed=feed_id, remaining=len(entries) - index)
                break

            state.stage = CycleStage.FILTERING
            try:
                is_new = await self._ledger_call("is_new", feed_id, entry.identity_key)
            except StorageUnavailable as e:
                logger.error("ledger_unavailable", feed=feed_id, op="is_new", error=str(e))
                result.fail(f"storage: {e}")
                return

            if not is_new:
                continue
            result.entries_new += 1
            first_seen_at = datetime.utcnow()

            state.stage = CycleStage.PUBLISHING
            try:
                await self.publisher.publish(entry)
            except TransportError as e:
                # Left uncommitted so the next cycle tries it again
                result.entry_failed(f"publish: {e}")
                continue

            state.stage = CycleStage.COMMITTING
            try:
                await self._ledger_call(
                    "commit", feed_id, entry.identity_key, datetime.utcnow(), first_seen_at
                )
            except DuplicateCommit:
                logger.debug("ledger_already_committed", feed=feed_id, key=entry.identity_key[:12])
            except StorageUnavailable as e:
                # Published but not recorded: the next cycle will publish it again
                logger.error(
                    "ledger_commit_failed_after_publish",
                    feed=feed_id,
                    key=entry.identity_key[:12],
                    error=str(e),
                )
                result.entry_failed(f"commit: {e}")
                continue

            result.entries_published += 1
            state.entries_published += 1

    async def _fetch_unless_stopped(self, state: FeedState) -> Optional[FetchOutcome]:
        """Fetch, or return None as soon as a stop is requested.

        The in-flight request and any retry backoff are cancelled.
        """
        fetch = asyncio.ensure_future(self.fetcher.fetch(state))
        stop = asyncio.ensure_future(self._stopping.wait())
        try:
            done, _ = await asyncio.wait({fetch, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            if not fetch.done():
                fetch.cancel()

        if fetch in done:
            return fetch.result()
        await asyncio.gather(fetch, return_exceptions=True)
        return None

    async def _ledger_call(self, op: str, *args):
        """Run a blocking ledger operation off the loop, with timeout and retries."""
        fn = getattr(self.ledger, op)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.storage_max_attempts),
            wait=wait_random_exponential(
                multiplier=self.storage_backoff_base, max=self.storage_backoff_cap
            ),
            retry=retry_if_exception_type(StorageUnavailable),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                try:
                    return await asyncio.wait_for(
                        asyncio.to_thread(fn, *args), timeout=self.storage_timeout
                    )
                except asyncio.TimeoutError as e:
                    raise StorageUnavailable(
                        f"{op} timed out after {self.storage_timeout}s"
                    ) from e

    def get_state(self, feed_id: str) -> Optional[FeedState]:
        return self.states.get(feed_id)
