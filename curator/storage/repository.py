"""
Content item repository.

Persists normalized ContentItems keyed by (source_id, platform_id).
Re-inserting an existing key updates the row in place, so re-curating
the same post or article is idempotent.
"""

import logging
from dataclasses import dataclass

import asyncpg

from curator.ingestion.errors import is_duplicate_error
from curator.ingestion.schemas import ContentItem
from curator.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS content_items (
    id               TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    source_id        TEXT NOT NULL REFERENCES content_sources(id) ON DELETE CASCADE,
    platform_id      TEXT NOT NULL,
    content_text     TEXT,
    content_summary  TEXT,
    author_handle    TEXT NOT NULL,
    posted_at        TIMESTAMPTZ NOT NULL,
    cached_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    engagement_count INTEGER NOT NULL DEFAULT 0 CHECK (engagement_count >= 0),
    is_breaking_news BOOLEAN NOT NULL DEFAULT FALSE,
    content_type     TEXT NOT NULL DEFAULT 'general',
    media_urls       TEXT[] NOT NULL DEFAULT '{}',
    external_url     TEXT,
    source_url       TEXT,
    UNIQUE (source_id, platform_id)
);

CREATE INDEX IF NOT EXISTS idx_content_items_posted_at
    ON content_items(posted_at DESC);
CREATE INDEX IF NOT EXISTS idx_content_items_source_id
    ON content_items(source_id);
CREATE INDEX IF NOT EXISTS idx_content_items_content_type
    ON content_items(content_type);
"""

_UPSERT_SQL = """
INSERT INTO content_items (
    source_id, platform_id, content_text, content_summary, author_handle,
    posted_at, cached_at, engagement_count, is_breaking_news, content_type,
    media_urls, external_url, source_url
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
ON CONFLICT (source_id, platform_id) DO UPDATE SET
    content_text = EXCLUDED.content_text,
    content_summary = EXCLUDED.content_summary,
    cached_at = EXCLUDED.cached_at,
    engagement_count = EXCLUDED.engagement_count,
    is_breaking_news = EXCLUDED.is_breaking_news,
    content_type = EXCLUDED.content_type,
    media_urls = EXCLUDED.media_urls,
    external_url = EXCLUDED.external_url,
    source_url = EXCLUDED.source_url
RETURNING (xmax = 0) AS inserted
"""

# Ranked feed: breaking first, then recency, then engagement
_USER_FEED_SQL = """
SELECT ci.*, cs.handle AS source_handle, cs.display_name AS source_display_name
FROM content_items ci
JOIN content_sources cs ON cs.id = ci.source_id
WHERE cs.user_id = $1 AND cs.is_active = TRUE
ORDER BY ci.is_breaking_news DESC, ci.posted_at DESC, ci.engagement_count DESC
LIMIT $2 OFFSET $3
"""


@dataclass
class SaveResult:
    """Outcome counts for a batch save."""

    saved: int = 0
    updated: int = 0
    duplicates: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.saved + self.updated + self.duplicates + self.failed


class ContentRepository:
    """Storage for normalized content items."""

    def __init__(self, database: Database):
        self._db = database

    async def create_tables(self) -> None:
        """Create the content_items table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLES_SQL)
        logger.info("Content items table ensured")

    async def upsert_item(self, item: ContentItem) -> bool:
        """
        Insert or update one item by its (source_id, platform_id) key.

        Returns:
            True if a new row was inserted, False if an existing row was updated
        """
        data = item.to_storage_dict()
        inserted = await self._db.fetchval(
            _UPSERT_SQL,
            data["source_id"],
            data["platform_id"],
            data["content_text"],
            data["content_summary"],
            data["author_handle"],
            data["posted_at"],
            data["fetched_at"],
            data["engagement_count"],
            data["is_breaking_news"],
            data["content_type"],
            data["media_urls"],
            data["external_url"],
            data["source_url"],
        )
        return bool(inserted)

    async def save_items(self, items: list[ContentItem]) -> SaveResult:
        """
        Persist a batch, one item at a time.

        Dedup-key collisions count as duplicates rather than failures;
        any other error is logged and the item skipped.
        """
        result = SaveResult()
        for item in items:
            try:
                if await self.upsert_item(item):
                    result.saved += 1
                else:
                    result.updated += 1
            except asyncpg.UniqueViolationError:
                result.duplicates += 1
            except Exception as e:
                if is_duplicate_error(e):
                    result.duplicates += 1
                    continue
                result.failed += 1
                logger.error(
                    f"Error saving content item {item.dedup_key}: {e}",
                    exc_info=True,
                )
        return result

    async def get_user_feed(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
    ) -> list[dict]:
        """Ranked content for a user's active sources."""
        rows = await self._db.fetch(_USER_FEED_SQL, user_id, limit, offset)
        return [dict(r) for r in rows]

    async def delete_older_than(self, days: int) -> int:
        """Remove items posted more than `days` ago. Returns rows deleted."""
        result = await self._db.execute(
            "DELETE FROM content_items WHERE posted_at < NOW() - make_interval(days => $1)",
            days,
        )
        try:
            return int(result.split()[-1])
        except (ValueError, IndexError):
            return 0
