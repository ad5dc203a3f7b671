"""Kafka adapter for the bus-publish capability."""

import asyncio
from typing import Optional

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError
import structlog

from .interfaces import BusInterface
from ..config.settings import settings
from ..errors import TransportError

logger = structlog.get_logger()


class KafkaBus(BusInterface):
    """Idempotent Kafka producer waiting for acks from all in-sync replicas."""

    def __init__(
        self,
        bootstrap_servers: str = None,
        client_id: str = None,
        request_timeout: float = None,
    ):
        self.bootstrap_servers = bootstrap_servers or settings.bus_bootstrap_servers
        self.client_id = client_id or settings.bus_client_id
        self.request_timeout = request_timeout or settings.publish_timeout_seconds
        self.producer: Optional[AIOKafkaProducer] = None
        self._start_lock = asyncio.Lock()

    async def start(self) -> None:
        async with self._start_lock:
            if self.producer is not None:
                return
            producer = AIOKafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                client_id=self.client_id,
                acks="all",
                enable_idempotence=True,
                request_timeout_ms=int(self.request_timeout * 1000),
            )
            try:
                await producer.start()
            except KafkaError as e:
                await producer.stop()
                raise TransportError(f"cannot connect to {self.bootstrap_servers}: {e}") from e
            self.producer = producer
        logger.info("kafka_connected", servers=self.bootstrap_servers, client_id=self.client_id)

    async def stop(self) -> None:
        if self.producer is not None:
            await self.producer.stop()
            self.producer = None
            logger.info("kafka_disconnected")

    async def send(self, topic: str, key: bytes, payload: bytes) -> None:
        if self.producer is None:
            await self.start()
        try:
            await asyncio.wait_for(
                self.producer.send_and_wait(topic, value=payload, key=key),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportError(f"no ack from {topic} within {self.request_timeout}s") from e
        except KafkaError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e
