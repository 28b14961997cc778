"""
Page snapshots and the HTTP content provider that produces them.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cached_property
from typing import Any, Dict, Optional, Protocol

import httpx
from bs4 import BeautifulSoup

from paperscout.configs.app_configs import CONTENT_FETCH_MAX_RETRIES
from paperscout.configs.app_configs import CONTENT_FETCH_TIMEOUT
from paperscout.configs.app_configs import CONTENT_FETCH_USER_AGENT
from paperscout.extraction.selectors.base import extract_domain
from paperscout.extraction.types import SelectorMode
from paperscout.utils.logger import setup_logger

logger = setup_logger()


@dataclass
class PageSnapshot:
    """The content of one page load, as handed to selectors and learners."""
    url: str
    html: str
    captured_at: float = field(default_factory=lambda: datetime.now(timezone.utc).timestamp())

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html, "html.parser")

    @property
    def domain(self) -> str:
        return extract_domain(self.url)

    def content_for(self, mode: SelectorMode) -> Any:
        """Content in the shape the given selector mode consumes."""
        if mode == SelectorMode.STRUCTURAL:
            return self.soup
        if mode == SelectorMode.PATTERN:
            return self.html
        raise ValueError(f"Unsupported selector mode: {mode}")


class ContentProvider(Protocol):
    """Protocol for whatever supplies page snapshots."""
    async def fetch(self, url: str) -> PageSnapshot:
        ...


class HttpContentProvider:
    """
    Fetches pages with httpx and wraps them as snapshots.
    Retries timeouts, network errors and 5xx responses with exponential backoff.
    """

    def __init__(
        self,
        timeout: float = CONTENT_FETCH_TIMEOUT,
        max_retries: int = CONTENT_FETCH_MAX_RETRIES,
        retry_backoff_factor: float = 0.5,
        user_agent: str = CONTENT_FETCH_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff_factor = retry_backoff_factor
        self.headers: Dict[str, str] = {"User-Agent": user_agent}
        self._transport = transport

        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

    async def __aenter__(self):
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    self._client = httpx.AsyncClient(
                        timeout=self.timeout,
                        follow_redirects=True,
                        headers=self.headers,
                        transport=self._transport,
                    )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            async with self._client_lock:
                if self._client is not None:
                    await self._client.aclose()
                    self._client = None

    async def _backoff(self, attempt: int, url: str, reason: str) -> None:
        backoff_time = self.retry_backoff_factor * (2 ** attempt)
        logger.warning(f"{reason} on attempt {attempt + 1} for {url}, retrying in {backoff_time:.1f}s")
        await asyncio.sleep(backoff_time)

    async def fetch(self, url: str) -> PageSnapshot:
        """
        Fetch a page.

        Raises:
            httpx.HTTPError: When the page cannot be fetched after all retries
        """
        client = await self._ensure_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.get(url)
                response.raise_for_status()
                return PageSnapshot(url=str(response.url), html=response.text)

            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if attempt >= self.max_retries:
                    logger.error(f"Fetching {url} failed after {attempt + 1} attempts: {e}")
                    raise
                await self._backoff(attempt, url, type(e).__name__)

            except httpx.HTTPStatusError as e:
                # Client errors are not retried
                if e.response.status_code < 500 or attempt >= self.max_retries:
                    logger.error(f"HTTP error {e.response.status_code} for {url}")
                    raise
                await self._backoff(attempt, url, f"Server error {e.response.status_code}")

        raise RuntimeError(f"Failed to fetch {url} after {self.max_retries + 1} attempts")
