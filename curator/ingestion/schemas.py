"""
Content schemas for the curation pipeline.

CRITICAL: ContentItem is the unified output of every source type and maps
one-to-one onto the content_items table. Do not rename fields without
updating the storage repository.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class ContentCategory(str, Enum):
    """Content classification, in descending precedence."""

    BREAKING = "breaking"
    TRANSFER = "transfer"
    TEAM = "team"
    GENERAL = "general"


class FeedItem(BaseModel):
    """A single cleaned RSS item or Atom entry."""

    title: str = ""
    description: str = ""
    link: str = ""
    published: str = Field(default="", description="Date string as found in the feed")
    published_at: datetime | None = Field(
        default=None,
        description="Parsed UTC publish time, None when the feed date is unparseable",
    )
    guid: str
    author: str | None = None


class Feed(BaseModel):
    """Parsed feed with channel-level metadata."""

    title: str
    description: str = ""
    link: str = ""
    dialect: Literal["rss", "atom"] = "rss"
    items: list[FeedItem] = Field(default_factory=list)


class PublicMetrics(BaseModel):
    """Engagement counters as reported by the Twitter API."""

    like_count: int = Field(default=0, ge=0)
    retweet_count: int = Field(default=0, ge=0)
    reply_count: int = Field(default=0, ge=0)
    quote_count: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.like_count + self.retweet_count + self.reply_count + self.quote_count


class SocialPost(BaseModel):
    """A post returned by the social platform API."""

    id: str
    text: str = ""
    author_id: str | None = None
    created_at: str = ""
    public_metrics: PublicMetrics = Field(default_factory=PublicMetrics)
    media_urls: list[str] = Field(default_factory=list)


class ContentItem(BaseModel):
    """
    UNIFIED CONTENT SCHEMA

    Produced by the ContentNormalizer for both social posts and feed items.
    Identity is the (source_id, platform_id) pair; storage upserts on it.
    """

    # Identity
    source_id: str = Field(..., description="Owning source reference")
    platform_id: str = Field(..., description="Platform-native identifier (tweet id, feed guid)")

    # Content
    content_text: str = Field(default="", description="Primary text (tweet text, article title)")
    content_summary: str | None = Field(default=None, description="Feed description/summary")
    author_handle: str

    # Timestamps
    posted_at: datetime = Field(..., description="UTC time the content was originally posted")
    fetched_at: datetime = Field(
        default_factory=_utc_now,
        description="UTC time the content was fetched",
    )

    # Ranking signals
    engagement_count: int = Field(default=0, ge=0)
    is_breaking_news: bool = False
    content_type: ContentCategory = ContentCategory.GENERAL

    # Links
    media_urls: list[str] = Field(default_factory=list)
    external_url: str | None = None
    source_url: str | None = Field(default=None, description="Original article link for feeds")

    model_config = {
        "use_enum_values": True,
    }

    @model_validator(mode="after")
    def check_breaking_flag(self) -> "ContentItem":
        """Breaking flag must mirror the breaking category."""
        expected = self.content_type == ContentCategory.BREAKING
        if self.is_breaking_news != expected:
            raise ValueError("is_breaking_news must be true iff content_type is 'breaking'")
        return self

    @property
    def dedup_key(self) -> tuple[str, str]:
        """Natural key used for idempotent persistence."""
        return (self.source_id, self.platform_id)

    def to_storage_dict(self) -> dict[str, Any]:
        """Convert to a column mapping for the content_items table."""
        data = self.model_dump()
        data["content_type"] = ContentCategory(self.content_type).value
        return data
