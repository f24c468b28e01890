"""
Content normalization: raw social posts and feed items -> ContentItem.

Handles:
- Keyword classification (breaking > transfer > team > general)
- Engagement: native counts for social posts, a heuristic for feeds
- Date parsing with a lossy fall back to "now"
- Canonical external URLs
"""

import logging
import math
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING

from curator.ingestion.schemas import ContentCategory, ContentItem, FeedItem, SocialPost

if TYPE_CHECKING:
    from curator.sources.schemas import Source

logger = logging.getLogger(__name__)

# Checked in this order; the first tier with a match wins
CATEGORY_KEYWORDS: tuple[tuple[ContentCategory, tuple[str, ...]], ...] = (
    (ContentCategory.BREAKING, ("breaking", "urgent", "confirmed", "🚨", "🔥")),
    (ContentCategory.TRANSFER, ("transfer", "signs", "deal", "joins")),
    (ContentCategory.TEAM, ("team", "squad", "lineup", "training")),
)

# Social posts above this engagement are treated as breaking
BREAKING_ENGAGEMENT_THRESHOLD = 1000

# Synthetic engagement for feeds, which expose none natively
FEED_BASE_ENGAGEMENT = {
    ContentCategory.BREAKING: 200,
    ContentCategory.TRANSFER: 150,
    ContentCategory.TEAM: 50,
    ContentCategory.GENERAL: 50,
}

# Matched as substrings of the feed URL; every match applies
PUBLISHER_MULTIPLIERS: tuple[tuple[str, float], ...] = (
    ("bbc", 1.5),
    ("espn", 1.3),
)

FEED_ENGAGEMENT_JITTER = 100.0

SOCIAL_POST_URL = "https://twitter.com/{handle}/status/{post_id}"


def classify(text: str, engagement: int | None = None) -> ContentCategory:
    """
    Classify text into a content category.

    Args:
        text: Combined title/description or post text
        engagement: Total engagement, only passed for social posts

    Returns:
        The highest-precedence matching category, GENERAL if none match
    """
    lowered = text.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
        if (
            category is ContentCategory.BREAKING
            and engagement is not None
            and engagement > BREAKING_ENGAGEMENT_THRESHOLD
        ):
            return category
    return ContentCategory.GENERAL


def parse_timestamp(value: str | datetime | None) -> datetime:
    """
    Parse a platform date into an aware UTC datetime.

    Accepts RFC 822 (RSS pubDate), ISO 8601 (Atom, Twitter) and datetimes.
    Naive values are taken as UTC. Anything unparseable becomes the
    current time rather than failing the item.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = (value or "").strip()
        parsed = None
        if text:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                try:
                    parsed = parsedate_to_datetime(text)
                except (TypeError, ValueError, IndexError):
                    parsed = None

        if parsed is None:
            logger.debug(f"Unparseable date {value!r}, using current time")
            return datetime.now(timezone.utc)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def publisher_multiplier(feed_url: str | None) -> float:
    """Engagement multiplier for well-known publishers."""
    if not feed_url:
        return 1.0
    url_lower = feed_url.lower()
    combined = 1.0
    for needle, multiplier in PUBLISHER_MULTIPLIERS:
        if needle in url_lower:
            combined *= multiplier
    return combined


class ContentNormalizer:
    """
    Maps platform payloads onto the unified ContentItem schema.

    The feed engagement jitter draws from an injectable Random so tests
    (and replays) can pin it.
    """

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def feed_engagement(self, category: ContentCategory, feed_url: str | None) -> int:
        """Approximate engagement for a feed item."""
        base = FEED_BASE_ENGAGEMENT[category] * publisher_multiplier(feed_url)
        jitter = self._rng.random() * FEED_ENGAGEMENT_JITTER
        return math.floor(base + jitter)

    def normalize_social_post(
        self,
        post: SocialPost,
        source_id: str,
        author_handle: str,
    ) -> ContentItem:
        """Normalize a social post. Deterministic apart from fetched_at."""
        handle = author_handle.lstrip("@")
        engagement = post.public_metrics.total
        category = classify(post.text, engagement=engagement)

        return ContentItem(
            source_id=source_id,
            platform_id=post.id,
            content_text=post.text,
            author_handle=handle,
            posted_at=parse_timestamp(post.created_at),
            engagement_count=engagement,
            is_breaking_news=category is ContentCategory.BREAKING,
            content_type=category,
            media_urls=list(post.media_urls),
            external_url=SOCIAL_POST_URL.format(handle=handle, post_id=post.id),
        )

    def normalize_feed_item(self, item: FeedItem, source: "Source") -> ContentItem:
        """Normalize a parsed feed item for the given feed source."""
        category = classify(f"{item.title} {item.description}")
        link = item.link or None

        return ContentItem(
            source_id=source.id,
            platform_id=item.guid,
            content_text=item.title,
            content_summary=item.description or None,
            author_handle=source.handle,
            posted_at=parse_timestamp(item.published_at or item.published),
            engagement_count=self.feed_engagement(category, source.feed_url),
            is_breaking_news=category is ContentCategory.BREAKING,
            content_type=category,
            media_urls=[],
            external_url=link,
            source_url=link,
        )
