"""Unit tests for the Kafka bus adapter (producer mocked)."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiokafka.errors import KafkaConnectionError, KafkaTimeoutError

from sieve.errors import TransportError
from sieve.publishing.kafka_bus import KafkaBus


def mock_producer():
    producer = MagicMock()
    producer.start = AsyncMock()
    producer.stop = AsyncMock()
    producer.send_and_wait = AsyncMock()
    return producer


@pytest.mark.asyncio
class TestKafkaBus:
    """Tests for KafkaBus."""

    async def test_start_configures_idempotent_producer(self):
        producer = mock_producer()
        with patch("sieve.publishing.kafka_bus.AIOKafkaProducer", return_value=producer) as cls:
            bus = KafkaBus(bootstrap_servers="kafka:9092", client_id="test")
            await bus.start()

        kwargs = cls.call_args.kwargs
        assert kwargs["bootstrap_servers"] == "kafka:9092"
        assert kwargs["acks"] == "all"
        assert kwargs["enable_idempotence"] is True
        producer.start.assert_awaited_once()

    async def test_send_passes_key_and_payload(self):
        producer = mock_producer()
        with patch("sieve.publishing.kafka_bus.AIOKafkaProducer", return_value=producer):
            bus = KafkaBus(bootstrap_servers="kafka:9092")
            await bus.send("entries", b"feed", b"{}")
            await bus.stop()

        producer.send_and_wait.assert_awaited_once_with("entries", value=b"{}", key=b"feed")
        producer.stop.assert_awaited_once()
        assert bus.producer is None

    async def test_kafka_errors_become_transport_errors(self):
        producer = mock_producer()
        producer.send_and_wait.side_effect = KafkaTimeoutError()
        with patch("sieve.publishing.kafka_bus.AIOKafkaProducer", return_value=producer):
            bus = KafkaBus(bootstrap_servers="kafka:9092")
            with pytest.raises(TransportError):
                await bus.send("entries", b"feed", b"{}")

    async def test_failed_connect_is_transport_error(self):
        producer = mock_producer()
        producer.start.side_effect = KafkaConnectionError("no brokers")
        with patch("sieve.publishing.kafka_bus.AIOKafkaProducer", return_value=producer):
            bus = KafkaBus(bootstrap_servers="kafka:9092")
            with pytest.raises(TransportError):
                await bus.start()

        assert bus.producer is None
        producer.stop.assert_awaited_once()

    async def test_concurrent_sends_share_one_producer(self):
        producer = mock_producer()
        with patch("sieve.publishing.kafka_bus.AIOKafkaProducer", return_value=producer) as cls:
            bus = KafkaBus(bootstrap_servers="kafka:9092")
            await asyncio.gather(
                bus.send("entries", b"a", b"{}"),
                bus.send("entries", b"b", b"{}"),
            )

        assert cls.call_count == 1
        assert producer.send_and_wait.await_count == 2
