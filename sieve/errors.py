"""Exception hierarchy for the ingestion pipeline."""


class SieveError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(SieveError):
    """Invalid feed or application configuration."""


class TransientNetworkError(SieveError):
    """Network failure worth retrying (connection errors, 5xx, 429)."""


class FetchTimeout(TransientNetworkError):
    """A fetch attempt exceeded its timeout."""


class HttpStatusError(SieveError):
    """Non-retryable HTTP status from a feed source."""

    def __init__(self, status: int, url: str = ""):
        super().__init__(f"HTTP {status} from {url}" if url else f"HTTP {status}")
        self.status = status
        self.url = url


class MalformedFeed(SieveError):
    """Feed payload could not be parsed as RSS/Atom."""


class StorageUnavailable(SieveError):
    """The ledger store could not be reached or failed mid-operation."""


class DuplicateCommit(SieveError):
    """A ledger record already exists for (feed_id, identity_key).

    Callers treat this as an idempotent success.
    """

    def __init__(self, feed_id: str, identity_key: str):
        super().__init__(f"already committed: {feed_id}/{identity_key}")
        self.feed_id = feed_id
        self.identity_key = identity_key


class TransportError(SieveError):
    """Publishing to the message bus failed."""
