"""Pytest configuration and shared fixtures."""

import json
import os
import tempfile
from datetime import datetime
from typing import Dict, List

import pytest

from sieve.errors import TransientNetworkError, TransportError
from sieve.ingestion.interfaces import FeedConfig, HttpClientInterface, HttpResponse, RawEntry
from sieve.publishing.interfaces import BusInterface


def make_rss(items: List[dict], title: str = "Test Feed") -> bytes:
    """Build a minimal RSS 2.0 document from item dicts."""
    parts = []
    for item in items:
        fields = []
        for tag in ("title", "link", "guid", "description", "pubDate"):
            if item.get(tag):
                fields.append(f"<{tag}>{item[tag]}</{tag}>")
        parts.append("<item>" + "".join(fields) + "</item>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>http://example.com</link>"
        "<description>test</description>"
        + "".join(parts)
        + "</channel></rss>"
    ).encode("utf-8")


def rss_items(prefix: str, count: int) -> List[dict]:
    return [
        {
            "title": f"{prefix} entry {i}",
            "link": f"https://example.com/{prefix}/{i}",
            "guid": f"{prefix}-{i}",
            "description": f"Body of {prefix} entry {i}",
            "pubDate": "Thu, 05 Sep 2024 12:00:00 GMT",
        }
        for i in range(1, count + 1)
    ]


class FakeHttp(HttpClientInterface):
    """Scripted HTTP capability.

    Each route holds a queue of responses (HttpResponse, exception or
    callable(headers)); the last one repeats forever.
    """

    def __init__(self):
        self.routes: Dict[str, list] = {}
        self.calls: List[tuple] = []

    def route(self, url: str, *responses):
        self.routes[url] = list(responses)

    def calls_for(self, url: str) -> List[dict]:
        return [headers for called, headers in self.calls if called == url]

    async def get(self, url: str, headers: Dict[str, str] = None) -> HttpResponse:
        self.calls.append((url, dict(headers or {})))
        queue = self.routes.get(url)
        if not queue:
            raise TransientNetworkError(f"no route for {url}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(headers or {})
        return item


class ConditionalServer:
    """Serves a body with an ETag and answers 304 when it matches."""

    def __init__(self, body: bytes, etag: str = '"v1"'):
        self.body = body
        self.etag = etag
        self.full_responses = 0

    def __call__(self, headers: Dict[str, str]) -> HttpResponse:
        if headers.get("If-None-Match") == self.etag:
            return HttpResponse(status=304)
        self.full_responses += 1
        return HttpResponse(status=200, body=self.body, etag=self.etag)


class FakeBus(BusInterface):
    """In-memory bus; fail_when(message) decides which sends raise."""

    def __init__(self, fail_when=None):
        self.fail_when = fail_when
        self.messages: List[dict] = []
        self.attempts = 0
        self.started = False

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    async def send(self, topic: str, key: bytes, payload: bytes) -> None:
        self.attempts += 1
        message = json.loads(payload)
        if self.fail_when and self.fail_when(message):
            raise TransportError("injected transport failure")
        self.messages.append({"topic": topic, "key": key, **message})

    def published_keys(self, feed_id: str = None) -> List[str]:
        return [
            m["identity_key"] for m in self.messages
            if feed_id is None or m["feed_id"] == feed_id
        ]


@pytest.fixture
def temp_db():
    """Provide a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield f"sqlite:///{db_path}"
    # Cleanup
    try:
        os.unlink(db_path)
    except FileNotFoundError:
        pass


@pytest.fixture
def ledger(temp_db):
    from sieve.storage.ledger import DedupLedger
    ledger = DedupLedger(temp_db)
    yield ledger
    ledger.dispose()


@pytest.fixture
def fake_http():
    return FakeHttp()


@pytest.fixture
def fake_bus():
    return FakeBus()


@pytest.fixture
def sample_feed_config():
    """Provide a sample feed configuration with instant retries."""
    return FeedConfig(
        feed_id="example",
        url="https://example.com/feed.xml",
        poll_interval_seconds=60.0,
        max_retries=2,
        backoff_base=0.0,
        backoff_cap=0.0,
    )


@pytest.fixture
def sample_raw_entry():
    """Provide a sample RawEntry."""
    return RawEntry(
        guid="tag:example.com,2024:1",
        title="Test Company Raises $50M Series B",
        link="https://example.com/2024/01/01/test-article/",
        published=datetime(2024, 1, 1, 12, 0, 0),
        summary="Test Company raises $50M",
        content="<p>Test Company announced today that it has raised $50 million.</p>",
    )


@pytest.fixture
def rss():
    """Builder for RSS payloads: rss(items) -> bytes."""
    return make_rss


@pytest.fixture
def items():
    """Builder for RSS item dicts: items(prefix, count)."""
    return rss_items


@pytest.fixture
def conditional_server():
    """Factory for an ETag-aware response callable."""
    return ConditionalServer


@pytest.fixture
def bus_factory():
    """Factory for FakeBus instances with an injected failure predicate."""
    return FakeBus
