"""Application settings and feed configuration."""

from .settings import Settings, settings
from .feeds import load_feeds

__all__ = ["Settings", "settings", "load_feeds"]
