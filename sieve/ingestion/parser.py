"""RSS/Atom parsing with feedparser."""

from datetime import datetime
from typing import List, Optional

import feedparser
import structlog

from .interfaces import ParserInterface, RawEntry
from ..errors import MalformedFeed

logger = structlog.get_logger()


class FeedParser(ParserInterface):
    """Turns a feed payload into RawEntry objects, preserving feed order."""

    def parse(self, body: bytes) -> List[RawEntry]:
        return parse_feed(body)


def parse_feed(body: bytes) -> List[RawEntry]:
    """Parse a feed payload.

    feedparser is lenient: a bozo flag alone is not fatal. A payload is
    malformed only when it yields no entries and no recognizable format.
    """
    parsed = feedparser.parse(body)

    if not parsed.entries and not parsed.version:
        reason = parsed.get("bozo_exception") or "unrecognized feed format"
        raise MalformedFeed(str(reason))

    if parsed.bozo:
        logger.debug("feed_parsed_with_warnings", error=str(parsed.get("bozo_exception")))

    return [_to_raw_entry(entry) for entry in parsed.entries]


def _to_raw_entry(entry) -> RawEntry:
    """Convert a feedparser entry to a RawEntry."""
    summary = entry.get("summary", "") or ""

    # Prefer full content when the feed provides it
    content = summary
    if entry.get("content"):
        content = entry.content[0].get("value", summary) or summary

    return RawEntry(
        guid=entry.get("id") or None,
        title=entry.get("title", "") or "",
        link=entry.get("link", "") or "",
        published=_parse_date(entry),
        summary=summary,
        content=content,
    )


def _parse_date(entry) -> Optional[datetime]:
    for attr in ("published_parsed", "updated_parsed"):
        parsed = entry.get(attr)
        if parsed:
            try:
                return datetime(*parsed[:6])
            except (TypeError, ValueError):
                pass
    return None
