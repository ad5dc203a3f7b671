"""Entry normalization and identity keys."""

import hashlib
from datetime import datetime
from typing import Optional

from .interfaces import Entry, RawEntry


def normalize(feed_id: str, raw: RawEntry) -> Entry:
    """Convert a RawEntry into a canonical Entry.

    Never raises: missing or odd fields become empty values. The same
    RawEntry always yields the same Entry.
    """
    guid = _text(raw.guid).strip()
    title = _text(raw.title).strip()
    link = _text(raw.link).strip()
    content = _text(raw.content) or _text(raw.summary)
    published_at = raw.published if isinstance(raw.published, datetime) else None

    return Entry(
        feed_id=_text(feed_id),
        identity_key=identity_key(guid, link, published_at, title, content),
        title=title,
        link=link,
        published_at=published_at,
        content_hash=content_hash(title, content),
    )


def identity_key(
    guid: str,
    link: str,
    published_at: Optional[datetime],
    title: str,
    content: str,
) -> str:
    """Stable key for an entry.

    Source guid first, then (link, published_at), then (title, content).
    Each path is namespaced so keys from different paths never collide.
    """
    if guid:
        return _sha256(f"guid\x1f{guid}")
    if link:
        published = published_at.isoformat() if published_at else ""
        return _sha256(f"link\x1f{link}\x1f{published}")
    return _sha256(f"text\x1f{title}\x1f{content}")


def content_hash(title: str, content: str) -> str:
    """Hash of the visible text, used to spot edits of an already-known entry."""
    return _sha256(f"{title}\x1f{content}")[:32]


def _sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8", errors="replace")).hexdigest()


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    try:
        return str(value)
    except Exception:
        return ""
