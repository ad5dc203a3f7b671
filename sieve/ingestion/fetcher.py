"""Feed fetcher with per-attempt timeouts, jittered retries and conditional GETs."""

import asyncio
import time

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from .interfaces import (
    FeedState,
    FetchErrorKind,
    FetchOutcome,
    FetcherInterface,
    HttpClientInterface,
    HttpResponse,
)
from ..config.settings import settings
from ..errors import FetchTimeout, HttpStatusError, TransientNetworkError

logger = structlog.get_logger()


class FeedFetcher(FetcherInterface):
    """Fetches one feed at a time through the HTTP capability."""

    def __init__(
        self,
        http: HttpClientInterface,
        timeout: float = None,
        failure_threshold: int = None,
        interval_backoff_factor: float = None,
        max_poll_interval: float = None,
    ):
        self.http = http
        self.timeout = timeout or settings.fetch_timeout_seconds
        self.failure_threshold = (
            failure_threshold if failure_threshold is not None else settings.failure_threshold
        )
        self.interval_backoff_factor = interval_backoff_factor or settings.interval_backoff_factor
        self.max_poll_interval = max_poll_interval or settings.max_poll_interval_seconds

    async def fetch(self, feed: FeedState) -> FetchOutcome:
        """Fetch a feed, retrying transient failures.

        Returns Unchanged on 304, NewContent with the body and fresh
        validators otherwise. Failures come back as an Error outcome and
        push the feed's poll interval back once the failure threshold is
        crossed.
        """
        start_time = time.time()
        attempts = 0
        config = feed.config

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(config.max_retries, 0) + 1),
            wait=wait_random_exponential(multiplier=config.backoff_base, max=config.backoff_cap),
            retry=retry_if_exception_type(TransientNetworkError),
            before_sleep=self._log_retry(feed),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    response = await self._attempt(feed)
        except FetchTimeout as e:
            outcome = FetchOutcome.failed(FetchErrorKind.TIMEOUT, str(e), attempts)
        except TransientNetworkError as e:
            outcome = FetchOutcome.failed(FetchErrorKind.NETWORK, str(e), attempts)
        except HttpStatusError as e:
            outcome = FetchOutcome.failed(FetchErrorKind.HTTP_STATUS, str(e), attempts)
        else:
            if response.not_modified:
                outcome = FetchOutcome.unchanged(attempts)
            else:
                outcome = FetchOutcome.new_content(
                    response.body,
                    etag=response.etag,
                    last_modified=response.last_modified,
                    attempts=attempts,
                )

        elapsed_ms = int((time.time() - start_time) * 1000)
        failed = outcome.error_kind is not None
        feed.record_fetch(success=not failed, fetch_time_ms=elapsed_ms)

        if failed:
            feed.record_failure(
                self.failure_threshold,
                self.interval_backoff_factor,
                self.max_poll_interval,
            )
            logger.warning(
                "feed_fetch_failed",
                feed=feed.feed_id,
                kind=outcome.error_kind.value,
                error=outcome.error,
                attempts=attempts,
                consecutive_failures=feed.consecutive_failures,
                next_interval=feed.current_interval,
            )
        else:
            logger.info(
                "feed_fetched",
                feed=feed.feed_id,
                status=outcome.status.value,
                bytes=len(outcome.body),
                attempts=attempts,
                time_ms=elapsed_ms,
            )

        return outcome

    async def _attempt(self, feed: FeedState) -> HttpResponse:
        try:
            response = await asyncio.wait_for(
                self.http.get(feed.url, headers=feed.conditional_headers()),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise FetchTimeout(f"timed out after {self.timeout}s fetching {feed.url}") from e

        if response.not_modified or 200 <= response.status < 300:
            return response
        raise HttpStatusError(response.status, feed.url)

    @staticmethod
    def _log_retry(feed: FeedState):
        def before_sleep(retry_state):
            logger.debug(
                "feed_fetch_retry",
                feed=feed.feed_id,
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()),
                sleep=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
            )
        return before_sleep
