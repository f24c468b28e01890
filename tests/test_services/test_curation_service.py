"""Tests for the curation orchestrator."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from prometheus_client import CollectorRegistry

from curator.ingestion.errors import (
    CurationTimeoutError,
    FeedTimeoutError,
    NoActiveSourcesError,
    SourceFetchFailedError,
)
from curator.ingestion.normalizer import ContentNormalizer
from curator.ingestion.schemas import Feed, FeedItem, PublicMetrics, SocialPost
from curator.ingestion.social_client import HandleNotFound, PostsFetched, RateLimited
from curator.observability.metrics import CurationMetrics
from curator.quota.ledger import QuotaCheck
from curator.services.config import CurationConfig
from curator.services.curation_service import (
    CurationOrchestrator,
    CurationState,
    deduplicate,
)
from curator.sources.schemas import Source, SourceKind
from curator.storage.repository import SaveResult

USAGE_KEY = ("user-1", "twitter", "2024-01-15")


class FakeFeedClient:
    """Returns canned feeds or raises canned errors by URL."""

    def __init__(self, feeds: dict[str, Feed | Exception]):
        self.feeds = feeds
        self.requested: list[str] = []

    async def fetch_feed(self, url: str) -> Feed:
        self.requested.append(url)
        outcome = self.feeds[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class SlowFeedClient:
    async def fetch_feed(self, url: str) -> Feed:
        await asyncio.sleep(5)
        return Feed(title="never")


class FakeSocialClient:
    """Replays scripted results per handle, one per call."""

    def __init__(self, script: dict[str, list]):
        self.script = {handle: list(results) for handle, results in script.items()}
        self.calls: list[tuple[str, int]] = []

    async def fetch_recent_posts(self, handle: str, max_count: int):
        self.calls.append((handle, max_count))
        return self.script[handle].pop(0)


def make_feed(prefix: str, count: int) -> Feed:
    return Feed(
        title=f"{prefix} feed",
        items=[
            FeedItem(
                title=f"{prefix} story {i}",
                description="Match report",
                link=f"https://example.com/{prefix}/{i}",
                published="Mon, 15 Jan 2024 09:30:00 GMT",
                guid=f"{prefix}-{i}",
            )
            for i in range(count)
        ],
    )


def make_posts(handle: str, *ids: str) -> PostsFetched:
    return PostsFetched(
        handle=handle,
        posts=[
            SocialPost(
                id=post_id,
                text=f"Update {post_id}",
                created_at="2024-01-15T11:00:00Z",
                public_metrics=PublicMetrics(like_count=10),
            )
            for post_id in ids
        ],
    )


def make_feed_source(source_id: str, url: str, name: str | None = None, priority: int = 1) -> Source:
    return Source(
        id=source_id,
        user_id="user-1",
        kind=SourceKind.FEED,
        handle=source_id,
        display_name=name,
        feed_url=url,
        priority=priority,
    )


def make_social_source(source_id: str, handle: str, priority: int = 1) -> Source:
    return Source(
        id=source_id,
        user_id="user-1",
        kind=SourceKind.SOCIAL,
        handle=handle,
        priority=priority,
    )


@pytest.fixture
def build(sources_repo, content_repo, ledger, zero_delay_config):
    """Build an orchestrator around fake clients."""

    def _build(
        feeds: dict | None = None,
        social: dict | None = None,
        config: CurationConfig | None = None,
        metrics: CurationMetrics | None = None,
        feed_client=None,
    ) -> CurationOrchestrator:
        return CurationOrchestrator(
            sources=sources_repo,
            content=content_repo,
            ledger=ledger,
            feed_client=feed_client or FakeFeedClient(feeds or {}),
            social_client=FakeSocialClient(social or {}),
            config=config or zero_delay_config,
            metrics=metrics,
        )

    return _build


class TestLoadingSources:
    """Tests for source loading and the no-sources failure."""

    @pytest.mark.asyncio
    async def test_no_active_sources_fails(self, build):
        orchestrator = build()
        messages: list[str] = []

        with pytest.raises(NoActiveSourcesError):
            await orchestrator.run("user-1", on_progress=messages.append)

        assert messages[-1] == "❌ Curation failed: No active content sources found"
        assert orchestrator.last_result.state == CurationState.FAILED

    @pytest.mark.asyncio
    async def test_priority_restricts_sources(self, build, sources_repo):
        sources_repo.get_active_sources.return_value = [
            make_feed_source("f1", "https://a.example.com/rss", priority=2)
        ]
        orchestrator = build(feeds={"https://a.example.com/rss": make_feed("a", 1)})

        await orchestrator.run("user-1", priority=2)

        sources_repo.get_active_sources.assert_awaited_once_with("user-1", priority=2)

    @pytest.mark.asyncio
    async def test_reports_source_counts(self, build, sources_repo, usage_repo):
        usage_repo.rows[USAGE_KEY] = 3
        sources_repo.get_active_sources.return_value = [
            make_feed_source("f1", "https://a.example.com/rss"),
            make_social_source("s1", "FabrizioRomano"),
        ]
        orchestrator = build(feeds={"https://a.example.com/rss": make_feed("a", 1)})

        result = await orchestrator.run("user-1")

        assert "Found 1 social and 1 feed sources" in result.progress


class TestFeedPhase:
    """Tests for sequential feed curation."""

    @pytest.mark.asyncio
    async def test_partial_failure_does_not_abort(self, build, sources_repo):
        """A failing feed is recorded and the next feed still runs."""
        sources_repo.get_active_sources.return_value = [
            make_feed_source("f1", "https://slow.example.com/rss", name="Slow Feed"),
            make_feed_source("f2", "https://ok.example.com/rss", name="OK Feed"),
        ]
        orchestrator = build(
            feeds={
                "https://slow.example.com/rss": FeedTimeoutError("Request timeout"),
                "https://ok.example.com/rss": make_feed("ok", 3),
            }
        )

        result = await orchestrator.run("user-1")

        assert result.state == CurationState.DONE
        assert len(result.items) == 3
        assert result.feed_items == 3
        assert len(result.errors) == 1
        error = result.errors[0]
        assert isinstance(error, SourceFetchFailedError)
        assert error.source_id == "f1"
        assert isinstance(error.cause, FeedTimeoutError)
        assert "❌ Failed to fetch from Slow Feed: Request timeout" in result.progress
        assert "✅ Successfully fetched 3 items from OK Feed" in result.progress

    @pytest.mark.asyncio
    async def test_at_most_ten_items_per_feed(self, build, sources_repo):
        sources_repo.get_active_sources.return_value = [
            make_feed_source("f1", "https://a.example.com/rss")
        ]
        orchestrator = build(feeds={"https://a.example.com/rss": make_feed("a", 15)})

        result = await orchestrator.run("user-1")

        assert len(result.items) == 10
        assert [i.platform_id for i in result.items] == [f"a-{n}" for n in range(10)]

    @pytest.mark.asyncio
    async def test_politeness_delay_between_feeds_only(self, sources_repo, content_repo, ledger):
        """Three feeds get two one-second pauses, none after the last."""
        urls = [f"https://{n}.example.com/rss" for n in ("a", "b", "c")]
        sources_repo.get_active_sources.return_value = [
            make_feed_source(f"f{i}", url) for i, url in enumerate(urls)
        ]
        orchestrator = CurationOrchestrator(
            sources=sources_repo,
            content=content_repo,
            ledger=ledger,
            feed_client=FakeFeedClient({url: make_feed(url[8], 1) for url in urls}),
            social_client=FakeSocialClient({}),
            config=CurationConfig(),
        )

        with patch("curator.services.curation_service.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await orchestrator.run("user-1")

        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.0)

    @pytest.mark.asyncio
    async def test_invalid_feed_source_is_a_source_failure(self, build, sources_repo):
        broken = make_feed_source("f1", "https://a.example.com/rss")
        broken.feed_url = None
        sources_repo.get_active_sources.return_value = [broken]
        orchestrator = build()

        result = await orchestrator.run("user-1")

        assert result.state == CurationState.DONE
        assert result.failed_sources == ["f1"]


class TestSocialPhase:
    """Tests for quota-aware social curation."""

    @pytest.mark.asyncio
    async def test_quota_exhausted_skips_phase(self, build, sources_repo, usage_repo):
        usage_repo.rows[USAGE_KEY] = 3
        sources_repo.get_active_sources.return_value = [make_social_source("s1", "FabrizioRomano")]
        orchestrator = build(social={"FabrizioRomano": []})

        result = await orchestrator.run("user-1")

        assert result.state == CurationState.DONE
        assert result.items == []
        assert result.errors == []
        assert "Social rate limited: Daily limit reached (3/3 calls used)" in result.progress
        assert orchestrator._social_client.calls == []

    @pytest.mark.asyncio
    async def test_priority_order_and_one_post_cap(self, build, sources_repo, usage_repo):
        """Sources are fetched tier 1 first, one post each, one call recorded each."""
        sources_repo.get_active_sources.return_value = [
            make_social_source("s3", "third", priority=3),
            make_social_source("s1", "first", priority=1),
            make_social_source("s2", "second", priority=2),
        ]
        orchestrator = build(
            social={
                "first": [make_posts("first", "101")],
                "second": [make_posts("second", "201")],
                "third": [make_posts("third", "301")],
            }
        )

        result = await orchestrator.run("user-1")

        assert orchestrator._social_client.calls == [("first", 1), ("second", 1), ("third", 1)]
        assert [i.platform_id for i in result.items] == ["101", "201", "301"]
        assert result.social_items == 3
        assert usage_repo.rows[USAGE_KEY] == 3

    @pytest.mark.asyncio
    async def test_allocation_limits_sources_fetched(self, build, sources_repo, usage_repo):
        """With one call left only the tier 1 source is fetched."""
        usage_repo.rows[USAGE_KEY] = 2
        sources_repo.get_active_sources.return_value = [
            make_social_source("s1", "first", priority=1),
            make_social_source("s2", "second", priority=2),
        ]
        orchestrator = build(social={"first": [make_posts("first", "101")], "second": []})

        result = await orchestrator.run("user-1")

        assert orchestrator._social_client.calls == [("first", 1)]
        assert len(result.items) == 1
        assert usage_repo.rows[USAGE_KEY] == 3

    @pytest.mark.asyncio
    async def test_retries_rate_limited_calls(self, build, sources_repo, usage_repo):
        sources_repo.get_active_sources.return_value = [make_social_source("s1", "first")]
        orchestrator = build(
            social={
                "first": [
                    RateLimited(handle="first"),
                    RateLimited(handle="first"),
                    make_posts("first", "101"),
                ]
            }
        )

        result = await orchestrator.run("user-1")

        assert len(orchestrator._social_client.calls) == 3
        assert len(result.items) == 1
        assert result.errors == []
        assert usage_repo.rows[USAGE_KEY] == 1
        waits = [m for m in result.progress if m.startswith("⏳ Rate limited on @first")]
        assert len(waits) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_wait_is_fifteen_minutes(self, sources_repo, content_repo, ledger):
        sources_repo.get_active_sources.return_value = [make_social_source("s1", "first")]
        orchestrator = CurationOrchestrator(
            sources=sources_repo,
            content=content_repo,
            ledger=ledger,
            feed_client=FakeFeedClient({}),
            social_client=FakeSocialClient(
                {"first": [RateLimited(handle="first"), make_posts("first", "101")]}
            ),
            config=CurationConfig(),
        )

        with patch("curator.services.curation_service.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await orchestrator.run("user-1")

        sleep.assert_awaited_once_with(900.0)
        assert any("waiting 15 minutes" in m for m in result.progress)

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, build, sources_repo, usage_repo):
        sources_repo.get_active_sources.return_value = [make_social_source("s1", "first")]
        orchestrator = build(social={"first": [RateLimited(handle="first")] * 3})

        result = await orchestrator.run("user-1")

        assert len(orchestrator._social_client.calls) == 3
        assert result.items == []
        assert result.failed_sources == ["s1"]
        assert USAGE_KEY not in usage_repo.rows

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, build, sources_repo, usage_repo):
        sources_repo.get_active_sources.return_value = [
            make_social_source("s1", "ghost", priority=1),
            make_social_source("s2", "second", priority=2),
        ]
        orchestrator = build(
            social={
                "ghost": [HandleNotFound(handle="ghost")],
                "second": [make_posts("second", "201")],
            }
        )

        result = await orchestrator.run("user-1")

        assert orchestrator._social_client.calls == [("ghost", 1), ("second", 1)]
        assert result.failed_sources == ["s1"]
        assert "❌ Failed to fetch from ghost: User ghost not found" in result.progress
        assert [i.platform_id for i in result.items] == ["201"]
        assert usage_repo.rows[USAGE_KEY] == 1

    @pytest.mark.asyncio
    async def test_pause_between_social_sources(self, sources_repo, content_repo, ledger):
        sources_repo.get_active_sources.return_value = [
            make_social_source("s1", "first", priority=1),
            make_social_source("s2", "second", priority=2),
        ]
        orchestrator = CurationOrchestrator(
            sources=sources_repo,
            content=content_repo,
            ledger=ledger,
            feed_client=FakeFeedClient({}),
            social_client=FakeSocialClient(
                {"first": [make_posts("first", "1")], "second": [make_posts("second", "2")]}
            ),
            config=CurationConfig(),
        )

        with patch("curator.services.curation_service.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await orchestrator.run("user-1")

        sleep.assert_awaited_once_with(60.0)


class TestAggregation:
    """Tests for combining and de-duplicating items."""

    @pytest.mark.asyncio
    async def test_feed_items_before_social_items(self, build, sources_repo):
        sources_repo.get_active_sources.return_value = [
            make_social_source("s1", "first"),
            make_feed_source("f1", "https://a.example.com/rss"),
        ]
        orchestrator = build(
            feeds={"https://a.example.com/rss": make_feed("a", 2)},
            social={"first": [make_posts("first", "101")]},
        )

        result = await orchestrator.run("user-1")

        assert [i.source_id for i in result.items] == ["f1", "f1", "s1"]
        assert result.progress[-1] == "Curated 3 items (2 feed, 1 social)"

    @pytest.mark.asyncio
    async def test_in_run_duplicates_dropped(self, build, sources_repo):
        duplicated = make_feed("a", 2)
        duplicated.items.append(duplicated.items[0].model_copy())
        sources_repo.get_active_sources.return_value = [
            make_feed_source("f1", "https://a.example.com/rss")
        ]
        orchestrator = build(feeds={"https://a.example.com/rss": duplicated})

        result = await orchestrator.run("user-1")

        assert [i.platform_id for i in result.items] == ["a-0", "a-1"]

    def test_deduplicate_keeps_first(self, feed_source):
        normalizer = ContentNormalizer()
        first = normalizer.normalize_feed_item(make_feed("a", 1).items[0], feed_source)
        second = first.model_copy(update={"content_text": "changed"})

        assert deduplicate([first, second]) == [first]

    @pytest.mark.asyncio
    async def test_progress_callback_mirrors_result(self, build, sources_repo):
        sources_repo.get_active_sources.return_value = [
            make_feed_source("f1", "https://a.example.com/rss")
        ]
        orchestrator = build(feeds={"https://a.example.com/rss": make_feed("a", 1)})
        seen: list[str] = []

        result = await orchestrator.run("user-1", on_progress=seen.append)

        assert seen == result.progress
        assert seen[0] == "Loading user sources..."

    @pytest.mark.asyncio
    async def test_failing_callback_is_ignored(self, build, sources_repo):
        sources_repo.get_active_sources.return_value = [
            make_feed_source("f1", "https://a.example.com/rss")
        ]
        orchestrator = build(feeds={"https://a.example.com/rss": make_feed("a", 1)})

        def explode(message: str) -> None:
            raise RuntimeError("UI gone")

        result = await orchestrator.run("user-1", on_progress=explode)

        assert result.state == CurationState.DONE


class TestFailuresAndDeadline:
    """Tests for top-level failures."""

    @pytest.mark.asyncio
    async def test_source_loading_error_propagates(self, build, sources_repo):
        sources_repo.get_active_sources.side_effect = ConnectionError("db down")
        orchestrator = build()
        messages: list[str] = []

        with pytest.raises(ConnectionError):
            await orchestrator.run("user-1", on_progress=messages.append)

        assert messages[-1] == "❌ Curation failed: db down"
        assert orchestrator.last_result.state == CurationState.FAILED

    @pytest.mark.asyncio
    async def test_run_deadline(self, build, sources_repo):
        sources_repo.get_active_sources.return_value = [
            make_feed_source("f1", "https://a.example.com/rss")
        ]
        orchestrator = build(
            config=CurationConfig(feed_delay_seconds=0, run_timeout_seconds=0.05),
            feed_client=SlowFeedClient(),
        )

        with pytest.raises(CurationTimeoutError):
            await orchestrator.run("user-1")

        assert orchestrator.last_result.state == CurationState.FAILED

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, build, sources_repo):
        registry = CollectorRegistry()
        metrics = CurationMetrics(registry=registry)
        sources_repo.get_active_sources.return_value = [
            make_feed_source("f1", "https://a.example.com/rss"),
            make_feed_source("f2", "https://b.example.com/rss"),
        ]
        orchestrator = build(
            feeds={
                "https://a.example.com/rss": make_feed("a", 2),
                "https://b.example.com/rss": FeedTimeoutError("slow"),
            },
            metrics=metrics,
        )

        await orchestrator.run("user-1")

        assert registry.get_sample_value("curator_runs_total", {"status": "done"}) == 1
        assert registry.get_sample_value(
            "curator_source_fetches_total", {"kind": "feed", "outcome": "success"}
        ) == 1
        assert registry.get_sample_value(
            "curator_source_fetches_total", {"kind": "feed", "outcome": "error"}
        ) == 1
        assert registry.get_sample_value("curator_items_curated_total", {"kind": "feed"}) == 2


class TestCurateAndSave:
    """Tests for persisting a run."""

    @pytest.mark.asyncio
    async def test_returns_new_item_count(self, build, sources_repo, content_repo):
        sources_repo.get_active_sources.return_value = [
            make_feed_source("f1", "https://a.example.com/rss")
        ]
        content_repo.save_items.return_value = SaveResult(saved=2, updated=1)
        orchestrator = build(feeds={"https://a.example.com/rss": make_feed("a", 3)})
        messages: list[str] = []

        saved = await orchestrator.curate_and_save("user-1", on_progress=messages.append)

        assert saved == 2
        assert len(content_repo.save_items.await_args[0][0]) == 3
        assert "Saving 3 items..." in messages
        assert messages[-1] == "✅ Content curation completed! Saved 2 new items"

    @pytest.mark.asyncio
    async def test_no_sources_raises_before_saving(self, build, content_repo):
        orchestrator = build()

        with pytest.raises(NoActiveSourcesError):
            await orchestrator.curate_and_save("user-1")

        content_repo.save_items.assert_not_called()


class TestStatus:
    """Tests for can_curate and remaining_calls."""

    @pytest.mark.asyncio
    async def test_no_sources(self, build):
        check = await build().can_curate("user-1")

        assert check == QuotaCheck(allowed=False, reason="No active content sources")

    @pytest.mark.asyncio
    async def test_feeds_always_allowed(self, build, sources_repo, usage_repo):
        usage_repo.rows[USAGE_KEY] = 3
        sources_repo.get_active_sources.return_value = [
            make_feed_source("f1", "https://a.example.com/rss"),
            make_social_source("s1", "first"),
        ]

        assert (await build().can_curate("user-1")).allowed is True

    @pytest.mark.asyncio
    async def test_social_only_uses_ledger(self, build, sources_repo, usage_repo):
        usage_repo.rows[USAGE_KEY] = 3
        sources_repo.get_active_sources.return_value = [make_social_source("s1", "first")]

        check = await build().can_curate("user-1")

        assert check.allowed is False
        assert check.reason == "Daily limit reached (3/3 calls used)"

    @pytest.mark.asyncio
    async def test_lookup_error(self, build, sources_repo):
        sources_repo.get_active_sources.side_effect = ConnectionError("db down")

        check = await build().can_curate("user-1")

        assert check == QuotaCheck(allowed=False, reason="Error checking curation status")

    @pytest.mark.asyncio
    async def test_remaining_calls(self, build, usage_repo):
        usage_repo.rows[USAGE_KEY] = 1

        assert await build().remaining_calls("user-1") == {"twitter": 2, "rss": "Unlimited"}
