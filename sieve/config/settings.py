"""Application settings with environment variable support."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from pathlib import Path


# Compute base_dir at module level
_BASE_DIR = Path(__file__).parent.parent.parent.resolve()


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SIEVE_",  # SIEVE_DATABASE_URL, SIEVE_BUS_TOPIC_NAME, etc.
    )

    # Paths - computed from base_dir
    base_dir: Path = _BASE_DIR
    feeds_config_path: Path = _BASE_DIR / "config" / "feeds.json"

    # Ledger
    database_url: str = f"sqlite:///{_BASE_DIR / 'data' / 'ledger.db'}"
    storage_max_attempts: int = 3
    storage_backoff_base: float = 0.2
    storage_backoff_cap: float = 5.0
    storage_timeout_seconds: float = 10.0

    # Bus
    bus_topic_name: str = "feed-entries"
    bus_bootstrap_servers: str = "localhost:9092"
    bus_client_id: str = "feed-sieve"
    publish_max_attempts: int = 5
    publish_backoff_base: float = 0.5
    publish_backoff_cap: float = 10.0
    publish_timeout_seconds: float = 15.0

    # Fetching
    fetch_timeout_seconds: float = 20.0
    user_agent: str = "FeedSieve/0.1 (+https://github.com/feed-sieve)"

    # Per-feed defaults (overridable in feeds.json)
    default_poll_interval_seconds: float = 300.0
    default_max_retries: int = 3
    default_backoff_base: float = 1.0
    default_backoff_cap: float = 30.0

    # Failure backoff of the poll interval
    failure_threshold: int = 3
    interval_backoff_factor: float = 2.0
    max_poll_interval_seconds: float = 3600.0

    # Lifecycle
    shutdown_grace_period_seconds: float = 30.0
    health_log_interval_seconds: float = 300.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.interval_backoff_factor < 1.0:
            raise ValueError("interval_backoff_factor must be >= 1.0")
        if self.publish_max_attempts < 1 or self.storage_max_attempts < 1:
            raise ValueError("max attempts must be >= 1")
        return self


settings = Settings()
