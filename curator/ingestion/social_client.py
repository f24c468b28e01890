"""
Twitter API v2 client for per-handle post fetching.

Two-step flow: resolve a handle to a numeric user id, then fetch that
user's recent tweets with engagement metrics. Outcomes are reported as
tagged results; 429 responses are kept distinct so the orchestrator can
wait and retry.

This client never consults or updates the daily quota ledger. Deciding
whether a call may be made is the orchestrator's job.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from curator.config.settings import get_settings
from curator.ingestion.errors import (
    HandleNotFoundError,
    NetworkError,
    RateLimitExceededError,
    UpstreamError,
)
from curator.ingestion.schemas import PublicMetrics, SocialPost

logger = logging.getLogger(__name__)

# Twitter API v2 endpoints
TWITTER_API_BASE = "https://api.twitter.com/2"
USER_BY_USERNAME = TWITTER_API_BASE + "/users/by/username/{handle}"
USER_TWEETS = TWITTER_API_BASE + "/users/{user_id}/tweets"

# /users/:id/tweets rejects max_results outside this range
MIN_RESULTS_PER_REQUEST = 5
MAX_RESULTS_PER_REQUEST = 100


@dataclass(frozen=True)
class PostsFetched:
    handle: str
    posts: list[SocialPost] = field(default_factory=list)


@dataclass(frozen=True)
class HandleNotFound:
    handle: str

    @property
    def message(self) -> str:
        return f"User {self.handle} not found"


@dataclass(frozen=True)
class RateLimited:
    handle: str
    retry_after: float | None = None

    @property
    def message(self) -> str:
        return "Twitter API rate limit hit (HTTP 429)"


@dataclass(frozen=True)
class SocialUpstreamError:
    handle: str
    status_code: int
    detail: str = ""

    @property
    def message(self) -> str:
        suffix = f" - {self.detail}" if self.detail else ""
        return f"Twitter API Error: {self.status_code}{suffix}"


@dataclass(frozen=True)
class SocialNetworkError:
    handle: str
    detail: str

    @property
    def message(self) -> str:
        return f"Network error: {self.detail}"


SocialFailure = HandleNotFound | RateLimited | SocialUpstreamError | SocialNetworkError
SocialFetchResult = PostsFetched | SocialFailure


def failure_to_error(failure: SocialFailure) -> Exception:
    """Map a failed fetch result onto the error taxonomy."""
    if isinstance(failure, HandleNotFound):
        return HandleNotFoundError(failure.message)
    if isinstance(failure, RateLimited):
        return RateLimitExceededError(failure.message)
    if isinstance(failure, SocialUpstreamError):
        return UpstreamError(failure.message, status_code=failure.status_code)
    if isinstance(failure, SocialNetworkError):
        return NetworkError(failure.message)
    raise TypeError(f"Unknown social fetch result: {failure!r}")


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _media_urls(tweet: dict[str, Any], media_by_key: dict[str, dict[str, Any]]) -> list[str]:
    """Resolve attachment media keys to URLs, keeping the key when no URL is known."""
    keys = (tweet.get("attachments") or {}).get("media_keys") or []
    urls = []
    for key in keys:
        media = media_by_key.get(key, {})
        urls.append(media.get("url") or media.get("preview_image_url") or key)
    return urls


class SocialClient:
    """
    Bearer-token Twitter API v2 client.

    Example:
        async with SocialClient(bearer_token="...") as client:
            result = await client.fetch_recent_posts("FabrizioRomano", max_count=1)
    """

    def __init__(
        self,
        bearer_token: str | None = None,
        timeout: float = 30.0,
        user_agent: str | None = None,
    ):
        settings = get_settings()
        self._bearer_token = bearer_token or settings.twitter_bearer_token
        self._user_agent = user_agent or settings.user_agent
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

        if not self._bearer_token:
            logger.warning(
                "Twitter bearer token not configured. "
                "Social sources will fail with HTTP 401."
            )

    @property
    def configured(self) -> bool:
        return bool(self._bearer_token)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._bearer_token}",
            "User-Agent": self._user_agent,
        }

    async def __aenter__(self) -> "SocialClient":
        self._client = httpx.AsyncClient(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_recent_posts(self, handle: str, max_count: int) -> SocialFetchResult:
        """
        Fetch up to max_count recent posts for a handle.

        Args:
            handle: Account handle, with or without a leading "@"
            max_count: Maximum posts to return (the API is asked for at
                least its minimum page size, the result is sliced)

        Returns:
            PostsFetched on success, otherwise one of the failure variants
        """
        handle = handle.lstrip("@")

        if not self._bearer_token:
            return SocialUpstreamError(handle=handle, status_code=401, detail="bearer token not configured")

        if self._client is not None:
            return await self._fetch_with(self._client, handle, max_count)

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._fetch_with(client, handle, max_count)

    async def _get(
        self,
        client: httpx.AsyncClient,
        handle: str,
        url: str,
        params: dict[str, Any],
    ) -> dict[str, Any] | SocialFailure:
        try:
            response = await client.get(url, headers=self.headers, params=params)
        except httpx.TransportError as e:
            logger.warning(f"Twitter request failed for @{handle}: {type(e).__name__}: {e}")
            return SocialNetworkError(handle=handle, detail=f"{type(e).__name__}: {e}")

        if response.status_code == 429:
            logger.warning(f"Twitter rate limit hit for @{handle}")
            return RateLimited(handle=handle, retry_after=_retry_after(response))

        if response.status_code == 404:
            return HandleNotFound(handle=handle)

        if not response.is_success:
            logger.error(f"Twitter API error for @{handle}: {response.status_code}")
            return SocialUpstreamError(
                handle=handle,
                status_code=response.status_code,
                detail=response.text[:200],
            )

        try:
            body = response.json()
        except ValueError:
            return SocialUpstreamError(
                handle=handle,
                status_code=response.status_code,
                detail="invalid JSON body",
            )

        if not isinstance(body, dict):
            logger.error(f"Unexpected Twitter response shape for @{handle}: {type(body).__name__}")
            return SocialUpstreamError(
                handle=handle,
                status_code=response.status_code,
                detail="unexpected JSON body",
            )
        return body

    async def _fetch_with(
        self,
        client: httpx.AsyncClient,
        handle: str,
        max_count: int,
    ) -> SocialFetchResult:
        user = await self._get(
            client,
            handle,
            USER_BY_USERNAME.format(handle=handle),
            {"user.fields": "id,username,name"},
        )
        if not isinstance(user, dict):
            return user

        user_data = user.get("data")
        if not user_data or "id" not in user_data:
            return HandleNotFound(handle=handle)

        max_results = min(max(max_count, MIN_RESULTS_PER_REQUEST), MAX_RESULTS_PER_REQUEST)
        timeline = await self._get(
            client,
            handle,
            USER_TWEETS.format(user_id=user_data["id"]),
            {
                "max_results": str(max_results),
                "tweet.fields": "created_at,public_metrics,attachments",
                "expansions": "attachments.media_keys",
                "media.fields": "type,url,preview_image_url",
            },
        )
        if not isinstance(timeline, dict):
            return timeline

        media_by_key = {
            media["media_key"]: media
            for media in (timeline.get("includes") or {}).get("media", [])
            if "media_key" in media
        }

        posts = []
        for tweet in (timeline.get("data") or [])[: max(max_count, 0)]:
            posts.append(
                SocialPost(
                    id=str(tweet["id"]),
                    text=tweet.get("text", ""),
                    author_id=tweet.get("author_id") or user_data["id"],
                    created_at=tweet.get("created_at", ""),
                    public_metrics=PublicMetrics(**(tweet.get("public_metrics") or {})),
                    media_urls=_media_urls(tweet, media_by_key),
                )
            )

        logger.debug(f"Fetched {len(posts)} posts from @{handle}")
        return PostsFetched(handle=handle, posts=posts)
