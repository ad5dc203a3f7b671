"""Retrying publisher for canonical entries."""

import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from .interfaces import BusInterface
from ..config.settings import settings
from ..errors import TransportError
from ..ingestion.interfaces import Entry

logger = structlog.get_logger()


class Publisher:
    """Sends entries to the bus topic, keyed by feed for per-feed ordering.

    A retry may duplicate a message that did land on the far side; the
    ledger commit afterwards is what keeps the next cycle from sending it
    again.
    """

    def __init__(
        self,
        bus: BusInterface,
        topic: str = None,
        max_attempts: int = None,
        backoff_base: float = None,
        backoff_cap: float = None,
    ):
        self.bus = bus
        self.topic = topic or settings.bus_topic_name
        self.max_attempts = max_attempts or settings.publish_max_attempts
        self.backoff_base = backoff_base if backoff_base is not None else settings.publish_backoff_base
        self.backoff_cap = backoff_cap if backoff_cap is not None else settings.publish_backoff_cap

        self.published = 0
        self.retries = 0
        self.failed = 0

    async def publish(self, entry: Entry) -> None:
        """Publish one entry. Raises TransportError once retries are exhausted."""
        key = entry.feed_id.encode("utf-8")
        payload = entry.to_payload()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_random_exponential(multiplier=self.backoff_base, max=self.backoff_cap),
            retry=retry_if_exception_type(TransportError),
            before_sleep=self._before_retry(entry),
        )

        try:
            async for attempt in retrying:
                with attempt:
                    await self.bus.send(self.topic, key, payload)
        except RetryError as e:
            self.failed += 1
            cause = e.last_attempt.exception()
            logger.warning(
                "publish_failed",
                feed=entry.feed_id,
                key=entry.identity_key[:12],
                attempts=self.max_attempts,
                error=str(cause),
            )
            raise TransportError(
                f"publish failed after {self.max_attempts} attempts: {cause}"
            ) from cause

        self.published += 1
        logger.debug("entry_published", feed=entry.feed_id, key=entry.identity_key[:12], topic=self.topic)

    def get_stats(self) -> dict:
        return {
            "topic": self.topic,
            "published": self.published,
            "retries": self.retries,
            "failed": self.failed,
        }

    def _before_retry(self, entry: Entry):
        def before_sleep(retry_state):
            self.retries += 1
            logger.debug(
                "publish_retry",
                feed=entry.feed_id,
                key=entry.identity_key[:12],
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()),
            )
        return before_sleep
