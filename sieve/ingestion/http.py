"""aiohttp-backed HTTP client for feed fetching."""

import asyncio
from typing import Dict, Optional

import aiohttp
import structlog

from .interfaces import HttpClientInterface, HttpResponse
from ..config.settings import settings
from ..errors import TransientNetworkError, FetchTimeout

logger = structlog.get_logger()

# Statuses that are worth another attempt
RETRYABLE_STATUSES = {408, 425, 429, 500, 502, 503, 504}


class HttpClient(HttpClientInterface):
    """Shared aiohttp session used by all feeds."""

    def __init__(self, timeout: float = None, user_agent: str = None):
        self.timeout = timeout or settings.fetch_timeout_seconds
        self.user_agent = user_agent or settings.user_agent
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def open(self):
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": self.user_agent},
            )

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

    async def get(self, url: str, headers: Dict[str, str] = None) -> HttpResponse:
        """GET a feed URL.

        Non-retryable statuses come back as a normal response; the caller
        decides what to do with them.
        """
        if self.session is None:
            await self.open()

        try:
            async with self.session.get(url, headers=headers or {}) as response:
                if response.status in RETRYABLE_STATUSES:
                    raise TransientNetworkError(f"HTTP {response.status} from {url}")

                body = b"" if response.status == 304 else await response.read()
                return HttpResponse(
                    status=response.status,
                    body=body,
                    etag=response.headers.get("ETag"),
                    last_modified=response.headers.get("Last-Modified"),
                )
        except asyncio.TimeoutError as e:
            raise FetchTimeout(f"timed out after {self.timeout}s fetching {url}") from e
        except aiohttp.ClientError as e:
            raise TransientNetworkError(f"{type(e).__name__}: {e}") from e
