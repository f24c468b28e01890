"""
HTTP client for RSS / Atom feeds.

Fetches a feed URL with a fixed client-side timeout and reports the
outcome as a tagged result so callers can tell a slow feed from a
broken host, a bad status or a non-XML body. No retries at this layer.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from curator.config.settings import get_settings
from curator.ingestion.errors import (
    FeedTimeoutError,
    NetworkError,
    NotXmlError,
    UpstreamError,
)
from curator.ingestion.feed_parser import MAX_FEED_ITEMS, parse_feed
from curator.ingestion.schemas import Feed

logger = logging.getLogger(__name__)

FEED_ACCEPT_HEADER = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"


class FeedClientConfig(BaseSettings):
    """Settings for feed fetching."""

    model_config = SettingsConfigDict(
        env_prefix="FEED_",
        case_sensitive=False,
        extra="ignore",
    )

    timeout_seconds: float = Field(default=10.0, gt=0.0)
    max_items: int = Field(default=MAX_FEED_ITEMS, ge=1)


@dataclass(frozen=True)
class FeedFetched:
    url: str
    text: str


@dataclass(frozen=True)
class FeedTimeout:
    url: str
    timeout_seconds: float

    @property
    def message(self) -> str:
        return f"Request timeout - feed took longer than {self.timeout_seconds:g}s to respond"


@dataclass(frozen=True)
class FeedNetworkError:
    url: str
    detail: str

    @property
    def message(self) -> str:
        return f"Network error: {self.detail}"


@dataclass(frozen=True)
class FeedHTTPError:
    url: str
    status_code: int

    @property
    def message(self) -> str:
        return f"HTTP {self.status_code}"


@dataclass(frozen=True)
class FeedNotXml:
    url: str
    detail: str

    @property
    def message(self) -> str:
        return self.detail


FeedFailure = FeedTimeout | FeedNetworkError | FeedHTTPError | FeedNotXml
FeedFetchResult = FeedFetched | FeedFailure


def failure_to_error(failure: FeedFailure) -> Exception:
    """Map a failed fetch result onto the error taxonomy."""
    if isinstance(failure, FeedTimeout):
        return FeedTimeoutError(failure.message)
    if isinstance(failure, FeedNetworkError):
        return NetworkError(failure.message)
    if isinstance(failure, FeedHTTPError):
        return UpstreamError(failure.message, status_code=failure.status_code)
    if isinstance(failure, FeedNotXml):
        return NotXmlError(failure.message)
    raise TypeError(f"Unknown feed fetch result: {failure!r}")


def _looks_like_xml(text: str) -> bool:
    return text.lstrip("\ufeff \t\r\n").startswith("<")


class FeedClient:
    """
    Async feed fetcher.

    Can be used as an async context manager to share one connection pool
    across several fetches; otherwise each fetch opens a short-lived client.

    Example:
        async with FeedClient() as client:
            result = await client.fetch("https://feeds.bbci.co.uk/sport/football/rss.xml")
            if isinstance(result, FeedFetched):
                feed = parse_feed(result.text)
    """

    def __init__(
        self,
        config: FeedClientConfig | None = None,
        user_agent: str | None = None,
    ):
        self._config = config or FeedClientConfig()
        self._user_agent = user_agent or get_settings().user_agent
        self._client: httpx.AsyncClient | None = None

    @property
    def timeout_seconds(self) -> float:
        return self._config.timeout_seconds

    @property
    def headers(self) -> dict[str, str]:
        return {
            "User-Agent": self._user_agent,
            "Accept": FEED_ACCEPT_HEADER,
        }

    async def __aenter__(self) -> "FeedClient":
        self._client = httpx.AsyncClient(timeout=self._config.timeout_seconds, follow_redirects=True)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> FeedFetchResult:
        """
        Fetch raw feed text.

        Args:
            url: Feed URL

        Returns:
            FeedFetched on success, otherwise one of the failure variants
        """
        if self._client is not None:
            return await self._fetch_with(self._client, url)

        async with httpx.AsyncClient(
            timeout=self._config.timeout_seconds, follow_redirects=True
        ) as client:
            return await self._fetch_with(client, url)

    async def _fetch_with(self, client: httpx.AsyncClient, url: str) -> FeedFetchResult:
        logger.debug(f"Fetching feed {url}")

        # httpx timeouts apply per phase; the deadline bounds the whole fetch
        try:
            async with asyncio.timeout(self.timeout_seconds):
                response = await client.get(url, headers=self.headers)
        except (httpx.TimeoutException, TimeoutError):
            logger.warning(f"Feed fetch timed out after {self.timeout_seconds}s: {url}")
            return FeedTimeout(url=url, timeout_seconds=self.timeout_seconds)
        except httpx.TransportError as e:
            logger.warning(f"Feed fetch failed for {url}: {type(e).__name__}: {e}")
            return FeedNetworkError(url=url, detail=f"{type(e).__name__}: {e}")

        if not response.is_success:
            logger.warning(f"Feed fetch returned HTTP {response.status_code}: {url}")
            return FeedHTTPError(url=url, status_code=response.status_code)

        text = response.text
        if not text:
            return FeedNotXml(url=url, detail="Empty response from feed")
        if not _looks_like_xml(text):
            logger.debug(f"Non-XML feed body from {url}: {text[:200]!r}")
            return FeedNotXml(url=url, detail="Response is not valid XML")

        return FeedFetched(url=url, text=text)

    async def fetch_feed(self, url: str) -> Feed:
        """
        Fetch and parse a feed.

        Raises:
            FeedTimeoutError, NetworkError, UpstreamError, NotXmlError:
                The fetch failed
            FeedParseError: The body could not be parsed
        """
        result = await self.fetch(url)
        if isinstance(result, FeedFetched):
            return parse_feed(result.text, max_items=self._config.max_items)
        raise failure_to_error(result)
