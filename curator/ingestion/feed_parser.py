"""
Tolerant RSS / Atom feed parsing.

Turns raw feed text into a Feed of cleaned FeedItems. Parsing is pure:
no network access, no clock, no randomness, so identical input always
yields identical output.

Dialects:
    - RSS 2.0, RSS 0.9x and RSS 1.0 (RDF) share one extraction path
    - Atom uses subtitle/summary/content/href/id equivalents

Fallback chains (kept stable, downstream ranking relies on them):
    - description: description/summary -> content
    - published:   published/pubDate -> updated
    - guid:        guid/id -> link -> synthesized placeholder
"""

import io
import logging
import time
from datetime import datetime, timezone
from typing import Any

import feedparser

from curator.ingestion.errors import FeedParseError
from curator.ingestion.schemas import Feed, FeedItem
from curator.ingestion.text import clean_text, stable_hash

logger = logging.getLogger(__name__)

# Entries considered per feed, in document order
MAX_FEED_ITEMS = 20

# bozo exceptions that do not indicate a broken document
_BENIGN_BOZO = (
    feedparser.CharacterEncodingOverride,
    feedparser.NonXMLContentType,
)


def _struct_to_datetime(value: time.struct_time | None) -> datetime | None:
    """Convert feedparser's UTC struct_time to an aware datetime."""
    if not value:
        return None
    try:
        return datetime(*value[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def _entry_description(entry: dict[str, Any]) -> str:
    summary = entry.get("summary")
    if summary:
        return summary
    contents = entry.get("content") or []
    for content in contents:
        value = content.get("value")
        if value:
            return value
    return ""


def _entry_to_item(entry: dict[str, Any]) -> FeedItem | None:
    """Build a FeedItem from a feedparser entry, or None for empty entries."""
    title = clean_text(entry.get("title"))
    description = clean_text(_entry_description(entry))

    if not title and not description:
        return None

    link = clean_text(entry.get("link"))

    published = (entry.get("published") or entry.get("updated") or "").strip()
    published_at = _struct_to_datetime(
        entry.get("published_parsed") or entry.get("updated_parsed")
    )

    guid = (entry.get("id") or "").strip()
    if not guid:
        guid = link or f"item-{stable_hash(title + '|' + description)}"

    author = clean_text(entry.get("author")) or None

    return FeedItem(
        title=title,
        description=description,
        link=link,
        published=published,
        published_at=published_at,
        guid=guid,
        author=author,
    )


def parse_feed(raw_text: str, max_items: int = MAX_FEED_ITEMS) -> Feed:
    """
    Parse RSS or Atom text into a Feed.

    Args:
        raw_text: Feed document as text
        max_items: Number of leading entries to consider

    Returns:
        Feed with cleaned channel metadata and up to max_items items.
        Entries with neither title nor description are dropped.

    Raises:
        FeedParseError: The text is not a recognizable feed, or is broken
            XML from which no entries could be recovered.
    """
    # Feed as a stream so feedparser never treats the text as a URL or path
    parsed = feedparser.parse(io.BytesIO(raw_text.encode("utf-8")))

    version = parsed.get("version") or ""
    entries = parsed.get("entries") or []
    bozo_exception = parsed.get("bozo_exception")

    if not version and not entries:
        raise FeedParseError(f"Unrecognized feed format: {bozo_exception or 'no feed root'}")

    if (
        parsed.get("bozo")
        and not entries
        and not isinstance(bozo_exception, _BENIGN_BOZO)
    ):
        raise FeedParseError(f"Malformed feed XML: {bozo_exception}")

    dialect = "atom" if version.startswith("atom") else "rss"
    default_label = "Atom Feed" if dialect == "atom" else "RSS Feed"

    channel = parsed.get("feed") or {}
    items: list[FeedItem] = []
    for entry in entries[:max_items]:
        item = _entry_to_item(entry)
        if item is None:
            logger.debug("Skipping feed entry without title or description")
            continue
        items.append(item)

    return Feed(
        title=clean_text(channel.get("title")) or default_label,
        description=clean_text(channel.get("subtitle")) or default_label,
        link=clean_text(channel.get("link")),
        dialect=dialect,
        items=items,
    )
