"""Interface definitions for feed ingestion."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict


class CycleStage(Enum):
    """Where a feed currently is in its poll cycle."""
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    FILTERING = "filtering"
    PUBLISHING = "publishing"
    COMMITTING = "committing"


@dataclass
class FeedConfig:
    """Configuration for a single feed."""
    feed_id: str
    url: str
    poll_interval_seconds: float = 300.0
    max_retries: int = 3
    backoff_base: float = 1.0
    backoff_cap: float = 30.0
    enabled: bool = True


@dataclass
class FeedState:
    """Live state of a configured feed.

    Owned by the feed's scheduler slot. Nothing here survives a restart;
    losing it only costs one unconditional fetch.
    """
    config: FeedConfig
    current_interval: float = 0.0
    last_fetch_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    consecutive_failures: int = 0
    stage: CycleStage = CycleStage.IDLE
    last_result: Optional[object] = None

    # Rolling stats
    fetch_count: int = 0
    success_rate: float = 1.0
    avg_fetch_time_ms: int = 0
    entries_published: int = 0

    def __post_init__(self):
        if not self.current_interval:
            self.current_interval = self.config.poll_interval_seconds

    @property
    def feed_id(self) -> str:
        return self.config.feed_id

    @property
    def url(self) -> str:
        return self.config.url

    def conditional_headers(self) -> Dict[str, str]:
        """Headers for a conditional GET based on the last response."""
        headers = {}
        if self.etag:
            etag = self.etag
            if not (etag.startswith('"') or etag.startswith('W/"')):
                etag = f'"{etag}"'
            headers["If-None-Match"] = etag
        if self.last_modified:
            headers["If-Modified-Since"] = self.last_modified
        return headers

    def update_validators(self, etag: Optional[str], last_modified: Optional[str]) -> None:
        """Remember the conditional-fetch token from the latest full response."""
        self.etag = etag
        self.last_modified = last_modified

    def record_fetch(self, success: bool, fetch_time_ms: int) -> None:
        """Update rolling fetch statistics."""
        self.fetch_count += 1
        self.last_fetch_at = datetime.utcnow()
        self.success_rate = (self.success_rate * 0.9) + ((1 if success else 0) * 0.1)
        self.avg_fetch_time_ms = int((self.avg_fetch_time_ms * 0.9) + (fetch_time_ms * 0.1))

    def record_success(self) -> None:
        """Reset failure tracking and the poll interval to base."""
        self.consecutive_failures = 0
        self.current_interval = self.config.poll_interval_seconds
        self.last_success_at = datetime.utcnow()

    def record_failure(self, threshold: int, factor: float, cap: float) -> None:
        """Count a failed cycle and back off the poll interval past the threshold."""
        self.consecutive_failures += 1
        if self.consecutive_failures > threshold:
            ceiling = max(cap, self.config.poll_interval_seconds)
            self.current_interval = min(self.current_interval * factor, ceiling)


@dataclass
class RawEntry:
    """A feed item as returned by the parser."""
    guid: Optional[str] = None
    title: str = ""
    link: str = ""
    published: Optional[datetime] = None
    summary: str = ""
    content: str = ""


@dataclass(frozen=True)
class Entry:
    """Canonical entry with a stable identity key."""
    feed_id: str
    identity_key: str
    title: str = ""
    link: str = ""
    published_at: Optional[datetime] = None
    content_hash: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "feed_id": self.feed_id,
            "identity_key": self.identity_key,
            "title": self.title,
            "link": self.link,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "content_hash": self.content_hash,
        }

    def to_payload(self) -> bytes:
        """Serialize for the message bus."""
        return json.dumps(self.to_dict(), ensure_ascii=False, sort_keys=True).encode("utf-8")


class FetchStatus(Enum):
    UNCHANGED = "unchanged"
    NEW_CONTENT = "new_content"
    ERROR = "error"


class FetchErrorKind(Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"


@dataclass
class FetchOutcome:
    """Result of fetching one feed."""
    status: FetchStatus
    body: bytes = b""
    error_kind: Optional[FetchErrorKind] = None
    error: Optional[str] = None
    attempts: int = 1
    # Validators from the response; applied to the feed once the body parses
    etag: Optional[str] = None
    last_modified: Optional[str] = None

    @classmethod
    def unchanged(cls, attempts: int = 1) -> "FetchOutcome":
        return cls(status=FetchStatus.UNCHANGED, attempts=attempts)

    @classmethod
    def new_content(
        cls,
        body: bytes,
        etag: str = None,
        last_modified: str = None,
        attempts: int = 1
    ) -> "FetchOutcome":
        return cls(
            status=FetchStatus.NEW_CONTENT,
            body=body,
            etag=etag,
            last_modified=last_modified,
            attempts=attempts,
        )

    @classmethod
    def failed(cls, kind: FetchErrorKind, error: str, attempts: int = 1) -> "FetchOutcome":
        return cls(status=FetchStatus.ERROR, error_kind=kind, error=error, attempts=attempts)


@dataclass
class HttpResponse:
    """What the HTTP capability hands back to the fetcher."""
    status: int
    body: bytes = b""
    etag: Optional[str] = None
    last_modified: Optional[str] = None

    @property
    def not_modified(self) -> bool:
        return self.status == 304


class HttpClientInterface:
    """Interface for the HTTP fetch capability."""

    async def open(self) -> None:
        """Acquire connections, if the client needs any."""

    async def close(self) -> None:
        """Release connections."""

    async def get(self, url: str, headers: Dict[str, str] = None) -> HttpResponse:
        """GET a URL. Raises TransientNetworkError or FetchTimeout."""
        raise NotImplementedError


class FetcherInterface:
    """Interface for feed fetching."""

    async def fetch(self, feed: FeedState) -> FetchOutcome:
        """Fetch a feed's current payload."""
        raise NotImplementedError


class ParserInterface:
    """Interface for feed parsing."""

    def parse(self, body: bytes) -> List[RawEntry]:
        """Parse a payload into entries, in feed order. Raises MalformedFeed."""
        raise NotImplementedError
