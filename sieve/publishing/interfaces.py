"""Interface definitions for the message bus."""


class BusInterface:
    """Interface for the bus-publish capability."""

    async def start(self) -> None:
        """Connect to the bus."""

    async def stop(self) -> None:
        """Flush and disconnect."""

    async def send(self, topic: str, key: bytes, payload: bytes) -> None:
        """Append a message and wait for the ack. Raises TransportError."""
        raise NotImplementedError
