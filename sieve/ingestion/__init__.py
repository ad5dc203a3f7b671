"""Feed ingestion - fetching, parsing and normalizing feeds."""

from .interfaces import (
    CycleStage, FeedConfig, FeedState, RawEntry, Entry,
    FetchStatus, FetchErrorKind, FetchOutcome, HttpResponse,
    HttpClientInterface, FetcherInterface, ParserInterface,
)
from .fetcher import FeedFetcher
from .http import HttpClient
from .normalizer import normalize
from .parser import FeedParser, parse_feed

__all__ = [
    "CycleStage", "FeedConfig", "FeedState", "RawEntry", "Entry",
    "FetchStatus", "FetchErrorKind", "FetchOutcome", "HttpResponse",
    "HttpClientInterface", "FetcherInterface", "ParserInterface",
    "FeedFetcher", "HttpClient", "normalize", "FeedParser", "parse_feed",
]
