"""Ingestion module - feed parsing, fetch clients and normalization."""

from curator.ingestion.schemas import (
    ContentCategory,
    ContentItem,
    Feed,
    FeedItem,
    SocialPost,
)

__all__ = [
    "ContentCategory",
    "ContentItem",
    "Feed",
    "FeedItem",
    "SocialPost",
]
