"""feed-sieve: poll syndication feeds, drop what was already published, publish the rest."""

__version__ = "0.1.0"
