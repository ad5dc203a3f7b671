"""Feed configuration loader."""

import json
import re
from pathlib import Path
from typing import List
from urllib.parse import urlparse

from ..ingestion.interfaces import FeedConfig
from ..errors import ConfigError
from .settings import settings


def load_feeds(config_path: str = None) -> List[FeedConfig]:
    """Load feed configurations from JSON file.

    Layout::

        {
          "defaults": {"poll_interval_seconds": 300, "max_retries": 3},
          "feeds": [{"feed_id": "hn", "url": "https://news.ycombinator.com/rss"}]
        }
    """
    if config_path is None:
        config_path = settings.feeds_config_path

    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"feeds config not found: {path}")

    with open(path) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"invalid JSON in {path}: {e}") from e

    return parse_feeds(data)


def parse_feeds(data: dict) -> List[FeedConfig]:
    """Build FeedConfigs from an already-decoded config document."""
    defaults = {
        "poll_interval_seconds": settings.default_poll_interval_seconds,
        "max_retries": settings.default_max_retries,
        "backoff_base": settings.default_backoff_base,
        "backoff_cap": settings.default_backoff_cap,
    }
    defaults.update(data.get("defaults", {}))

    feeds = []
    seen = set()
    for i, feed_data in enumerate(data.get("feeds", [])):
        url = (feed_data.get("url") or "").strip()
        if not url:
            raise ConfigError(f"feed #{i} has no url")

        feed_id = feed_data.get("feed_id") or feed_id_from_url(url)
        if feed_id in seen:
            raise ConfigError(f"duplicate feed_id: {feed_id}")
        seen.add(feed_id)

        config = FeedConfig(
            feed_id=feed_id,
            url=url,
            poll_interval_seconds=float(
                feed_data.get("poll_interval_seconds", defaults["poll_interval_seconds"])
            ),
            max_retries=int(feed_data.get("max_retries", defaults["max_retries"])),
            backoff_base=float(feed_data.get("backoff_base", defaults["backoff_base"])),
            backoff_cap=float(feed_data.get("backoff_cap", defaults["backoff_cap"])),
            enabled=feed_data.get("enabled", True),
        )
        if config.poll_interval_seconds <= 0:
            raise ConfigError(f"{feed_id}: poll_interval_seconds must be positive")
        if config.max_retries < 0:
            raise ConfigError(f"{feed_id}: max_retries must not be negative")

        feeds.append(config)

    return feeds


def feed_id_from_url(url: str) -> str:
    """Derive a readable id from host and path: https://a.com/b/rss -> a-com-b-rss."""
    parsed = urlparse(url)
    slug = re.sub(r"[^a-z0-9]+", "-", f"{parsed.netloc}{parsed.path}".lower())
    return slug.strip("-") or "feed"
