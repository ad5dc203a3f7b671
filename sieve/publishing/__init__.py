"""Publishing entries to the message bus."""

from .interfaces import BusInterface
from .publisher import Publisher

__all__ = ["BusInterface", "Publisher"]
