"""
Curation service - one user's run across feeds and social accounts.

A run loads the user's active sources, fetches feeds sequentially with
a politeness delay, then spends the remaining daily social quota on the
highest-priority accounts, normalizes everything into ContentItems and
drops in-run duplicates. Per-source failures are collected on the result
and never abort the batch.

Progress is reported as a sequence of human-readable strings, both on
the returned result and through an optional callback.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

import structlog

from curator.ingestion.errors import (
    CurationTimeoutError,
    NoActiveSourcesError,
    SourceFetchFailedError,
)
from curator.ingestion.feed_client import FeedClient
from curator.ingestion.normalizer import ContentNormalizer
from curator.ingestion.schemas import ContentItem
from curator.ingestion.social_client import (
    PostsFetched,
    RateLimited,
    SocialClient,
    SocialFetchResult,
    failure_to_error,
)
from curator.observability.logging import bind_context, clear_context
from curator.observability.metrics import CurationMetrics
from curator.quota.allocator import allocate_calls
from curator.quota.ledger import QuotaCheck, RateLimitLedger
from curator.services.config import CurationConfig
from curator.sources.repository import SourcesRepository
from curator.sources.schemas import Source
from curator.storage.repository import ContentRepository

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[str], None]


class CurationState(str, Enum):
    """Phases of a curation run."""

    IDLE = "idle"
    LOADING_SOURCES = "loading_sources"
    FEED_PHASE = "feed_phase"
    SOCIAL_PHASE = "social_phase"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


@dataclass
class CurationResult:
    """Everything a run produced, including what went wrong per source."""

    user_id: str
    items: list[ContentItem] = field(default_factory=list)
    progress: list[str] = field(default_factory=list)
    errors: list[SourceFetchFailedError] = field(default_factory=list)
    state: CurationState = CurationState.IDLE
    feed_items: int = 0
    social_items: int = 0
    elapsed_seconds: float = 0.0

    @property
    def failed_sources(self) -> list[str]:
        return [error.source_id for error in self.errors]


def deduplicate(items: list[ContentItem]) -> list[ContentItem]:
    """Drop items whose (source_id, platform_id) was already seen. First wins."""
    seen: set[tuple[str, str]] = set()
    unique = []
    for item in items:
        if item.dedup_key in seen:
            continue
        seen.add(item.dedup_key)
        unique.append(item)
    return unique


class CurationOrchestrator:
    """
    Runs curation for a user and optionally persists the result.

    Usage:
        orchestrator = CurationOrchestrator(sources, content, ledger)
        saved = await orchestrator.curate_and_save("user-1", on_progress=print)
    """

    def __init__(
        self,
        sources: SourcesRepository,
        content: ContentRepository,
        ledger: RateLimitLedger,
        feed_client: FeedClient | None = None,
        social_client: SocialClient | None = None,
        normalizer: ContentNormalizer | None = None,
        config: CurationConfig | None = None,
        metrics: CurationMetrics | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            sources: Source lookup (read only)
            content: Content persistence for curate_and_save
            ledger: Daily social call quota
            feed_client: Feed fetcher (default client if omitted)
            social_client: Social fetcher (default client if omitted)
            normalizer: Item normalizer
            config: Pacing and limits
            metrics: Optional Prometheus collectors
        """
        self._sources = sources
        self._content = content
        self._ledger = ledger
        self._feed_client = feed_client or FeedClient()
        self._social_client = social_client or SocialClient()
        self._normalizer = normalizer or ContentNormalizer()
        self._config = config or CurationConfig()
        self._metrics = metrics
        self.last_result: CurationResult | None = None

    def _emit(
        self,
        result: CurationResult,
        on_progress: ProgressCallback | None,
        message: str,
    ) -> None:
        result.progress.append(message)
        logger.debug("Curation progress", message=message)
        if on_progress is None:
            return
        try:
            on_progress(message)
        except Exception as e:
            logger.warning("Progress callback failed", error=str(e))

    async def run(
        self,
        user_id: str,
        on_progress: ProgressCallback | None = None,
        priority: int | None = None,
    ) -> CurationResult:
        """
        Curate content for a user without persisting it.

        Args:
            user_id: User whose sources are curated
            on_progress: Receives each progress message as it is emitted
            priority: Restrict the run to one priority tier

        Returns:
            Result in state DONE

        Raises:
            NoActiveSourcesError: The user has no active sources
            CurationTimeoutError: The configured run deadline expired
        """
        result = CurationResult(user_id=user_id)
        self.last_result = result
        started = time.monotonic()
        bind_context(user_id=user_id)

        try:
            if self._config.run_timeout_seconds is None:
                await self._run(result, on_progress, priority)
            else:
                try:
                    async with asyncio.timeout(self._config.run_timeout_seconds):
                        await self._run(result, on_progress, priority)
                except TimeoutError as e:
                    raise CurationTimeoutError(
                        f"Curation run exceeded {self._config.run_timeout_seconds:g}s"
                    ) from e
        except Exception as e:
            result.state = CurationState.FAILED
            result.elapsed_seconds = time.monotonic() - started
            self._emit(result, on_progress, f"❌ Curation failed: {e}")
            logger.error("Curation run failed", error=str(e), error_type=type(e).__name__)
            if self._metrics:
                self._metrics.record_run("failed", result.elapsed_seconds)
            raise
        finally:
            clear_context()

        result.elapsed_seconds = time.monotonic() - started
        if self._metrics:
            self._metrics.record_run("done", result.elapsed_seconds)

        logger.info(
            "Curation run completed",
            user_id=user_id,
            items=len(result.items),
            feed_items=result.feed_items,
            social_items=result.social_items,
            failed_sources=len(result.errors),
            elapsed_seconds=round(result.elapsed_seconds, 2),
        )
        return result

    async def _run(
        self,
        result: CurationResult,
        on_progress: ProgressCallback | None,
        priority: int | None,
    ) -> None:
        result.state = CurationState.LOADING_SOURCES
        self._emit(result, on_progress, "Loading user sources...")

        sources = [
            s for s in await self._sources.get_active_sources(result.user_id, priority=priority)
            if s.is_active
        ]
        if not sources:
            raise NoActiveSourcesError()

        social_sources = [s for s in sources if s.is_social]
        feed_sources = [s for s in sources if s.is_feed]
        self._emit(
            result,
            on_progress,
            f"Found {len(social_sources)} social and {len(feed_sources)} feed sources",
        )

        feed_items: list[ContentItem] = []
        if feed_sources:
            result.state = CurationState.FEED_PHASE
            feed_items = await self._feed_phase(result, on_progress, feed_sources)

        social_items: list[ContentItem] = []
        if social_sources:
            result.state = CurationState.SOCIAL_PHASE
            social_items = await self._social_phase(result, on_progress, social_sources)

        result.state = CurationState.AGGREGATING
        result.items = deduplicate(feed_items + social_items)
        result.feed_items = len(feed_items)
        result.social_items = len(social_items)
        self._emit(
            result,
            on_progress,
            f"Curated {len(result.items)} items "
            f"({len(feed_items)} feed, {len(social_items)} social)",
        )
        result.state = CurationState.DONE

    def _record_failure(
        self,
        result: CurationResult,
        on_progress: ProgressCallback | None,
        source: Source,
        error: Exception,
        kind: str,
    ) -> None:
        result.errors.append(SourceFetchFailedError(source.id, error))
        self._emit(result, on_progress, f"❌ Failed to fetch from {source.label}: {error}")
        logger.warning(
            "Source fetch failed",
            source_id=source.id,
            kind=kind,
            error=str(error),
            error_type=type(error).__name__,
        )
        if self._metrics:
            self._metrics.record_source_fetch(kind, "error")

    # -- feeds ---------------------------------------------------------

    async def _feed_phase(
        self,
        result: CurationResult,
        on_progress: ProgressCallback | None,
        sources: list[Source],
    ) -> list[ContentItem]:
        self._emit(result, on_progress, f"Starting feed curation from {len(sources)} feeds...")
        items: list[ContentItem] = []

        for index, source in enumerate(sources, start=1):
            self._emit(
                result,
                on_progress,
                f"Fetching from {source.label} ({index}/{len(sources)})...",
            )
            try:
                normalized = await self._curate_feed(source)
            except Exception as e:
                self._record_failure(result, on_progress, source, e, "feed")
            else:
                items.extend(normalized)
                self._emit(
                    result,
                    on_progress,
                    f"✅ Successfully fetched {len(normalized)} items from {source.label}",
                )
                if self._metrics:
                    self._metrics.record_source_fetch("feed", "success", items=len(normalized))

            if index < len(sources):
                await asyncio.sleep(self._config.feed_delay_seconds)

        self._emit(result, on_progress, f"🎉 Feed curation completed! Fetched {len(items)} total items")
        return items

    async def _curate_feed(self, source: Source) -> list[ContentItem]:
        source.validate()
        feed = await self._feed_client.fetch_feed(source.feed_url)
        return [
            self._normalizer.normalize_feed_item(item, source)
            for item in feed.items[: self._config.feed_item_limit]
        ]

    # -- social --------------------------------------------------------

    async def _social_phase(
        self,
        result: CurationResult,
        on_progress: ProgressCallback | None,
        sources: list[Source],
    ) -> list[ContentItem]:
        self._emit(result, on_progress, "Checking social rate limits...")
        check = await self._ledger.can_call(result.user_id)
        if not check.allowed:
            self._emit(result, on_progress, f"Social rate limited: {check.reason}")
            return []

        ordered = sorted(sources, key=lambda s: s.priority)
        remaining = await self._ledger.remaining(result.user_id)
        allocation = allocate_calls(ordered, remaining)
        planned = [s for s in ordered if allocation.get(s.id, 0) > 0]

        self._emit(
            result,
            on_progress,
            f"Starting social curation: {len(planned)} of {len(ordered)} sources, "
            f"{remaining} calls remaining today",
        )
        items: list[ContentItem] = []

        for index, source in enumerate(planned, start=1):
            max_count = min(allocation[source.id], self._config.social_posts_per_source)
            self._emit(
                result,
                on_progress,
                f"Fetching {max_count} post(s) from @{source.handle} ({index}/{len(planned)})...",
            )
            try:
                normalized = await self._curate_social(result, on_progress, source, max_count)
            except Exception as e:
                self._record_failure(result, on_progress, source, e, "social")
            else:
                items.extend(normalized)
                self._emit(
                    result,
                    on_progress,
                    f"✅ Successfully fetched {len(normalized)} posts from @{source.handle}",
                )
                if self._metrics:
                    self._metrics.record_source_fetch("social", "success", items=len(normalized))

            if index < len(planned):
                await asyncio.sleep(self._config.social_delay_seconds)

        self._emit(result, on_progress, f"Social curation complete: {len(items)} items")
        return items

    async def _curate_social(
        self,
        result: CurationResult,
        on_progress: ProgressCallback | None,
        source: Source,
        max_count: int,
    ) -> list[ContentItem]:
        outcome = await self._fetch_with_retry(result, on_progress, source, max_count)
        if not isinstance(outcome, PostsFetched):
            raise failure_to_error(outcome)

        await self._ledger.record_call(result.user_id)
        if self._metrics:
            self._metrics.quota_calls.inc()

        return [
            self._normalizer.normalize_social_post(post, source.id, source.handle)
            for post in outcome.posts
        ]

    async def _fetch_with_retry(
        self,
        result: CurationResult,
        on_progress: ProgressCallback | None,
        source: Source,
        max_count: int,
    ) -> SocialFetchResult:
        """Fetch posts, waiting and retrying only when the platform rate limits us."""
        max_retries = self._config.rate_limit_max_retries
        wait = self._config.rate_limit_wait_seconds
        attempt = 0

        while True:
            outcome = await self._social_client.fetch_recent_posts(source.handle, max_count)
            if not isinstance(outcome, RateLimited) or attempt >= max_retries:
                return outcome

            attempt += 1
            self._emit(
                result,
                on_progress,
                f"⏳ Rate limited on @{source.handle}, waiting {wait / 60:g} minutes "
                f"before retry {attempt}/{max_retries}...",
            )
            logger.info(
                "Waiting out social rate limit",
                source_id=source.id,
                attempt=attempt,
                wait_seconds=wait,
            )
            await asyncio.sleep(wait)

    # -- persistence and status ----------------------------------------

    async def curate_and_save(
        self,
        user_id: str,
        on_progress: ProgressCallback | None = None,
        priority: int | None = None,
    ) -> int:
        """
        Run curation and persist the items.

        Items already stored under the same (source_id, platform_id) are
        updated in place and not counted as new.

        Returns:
            Number of newly stored items
        """
        result = await self.run(user_id, on_progress=on_progress, priority=priority)

        self._emit(result, on_progress, f"Saving {len(result.items)} items...")
        outcome = await self._content.save_items(result.items)

        if self._metrics:
            self._metrics.items_saved.labels(outcome="saved").inc(outcome.saved)
            self._metrics.items_saved.labels(outcome="duplicate").inc(
                outcome.updated + outcome.duplicates
            )
            self._metrics.items_saved.labels(outcome="error").inc(outcome.failed)

        logger.info(
            "Curated items saved",
            user_id=user_id,
            saved=outcome.saved,
            updated=outcome.updated,
            duplicates=outcome.duplicates,
            failed=outcome.failed,
        )
        self._emit(
            result,
            on_progress,
            f"✅ Content curation completed! Saved {outcome.saved} new items",
        )
        return outcome.saved

    async def can_curate(self, user_id: str) -> QuotaCheck:
        """Whether a run for this user would fetch anything right now."""
        try:
            sources = await self._sources.get_active_sources(user_id)
        except Exception as e:
            logger.error("Error checking curation status", user_id=user_id, error=str(e))
            return QuotaCheck(allowed=False, reason="Error checking curation status")

        if not sources:
            return QuotaCheck(allowed=False, reason="No active content sources")

        # Feeds are never rate limited
        if any(s.is_feed for s in sources):
            return QuotaCheck(allowed=True)

        return await self._ledger.can_call(user_id)

    async def remaining_calls(self, user_id: str) -> dict[str, int | str]:
        """Calls left today per source kind."""
        return {
            "twitter": await self._ledger.remaining(user_id),
            "rss": "Unlimited",
        }
