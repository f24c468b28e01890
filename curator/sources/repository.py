"""Database repository for the content_sources table."""

import logging

from curator.sources.schemas import Source, SourceKind
from curator.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS content_sources (
    id           TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    user_id      TEXT NOT NULL,
    platform     TEXT NOT NULL DEFAULT 'twitter',
    handle       TEXT NOT NULL,
    display_name TEXT,
    feed_url     TEXT,
    priority     INTEGER NOT NULL DEFAULT 1 CHECK (priority BETWEEN 1 AND 3),
    is_active    BOOLEAN NOT NULL DEFAULT TRUE,
    last_updated TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (platform <> 'rss' OR feed_url IS NOT NULL)
);

CREATE INDEX IF NOT EXISTS idx_content_sources_user_id
    ON content_sources(user_id);
CREATE INDEX IF NOT EXISTS idx_content_sources_user_active
    ON content_sources(user_id, priority) WHERE is_active = TRUE;
"""

_UPSERT_SQL = """
INSERT INTO content_sources (id, user_id, platform, handle, display_name, feed_url, priority, is_active)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
ON CONFLICT (id) DO UPDATE SET
    handle = EXCLUDED.handle,
    display_name = EXCLUDED.display_name,
    feed_url = EXCLUDED.feed_url,
    priority = EXCLUDED.priority,
    is_active = EXCLUDED.is_active,
    last_updated = NOW()
"""


def _record_to_source(record) -> Source:
    """Convert an asyncpg Record to a Source dataclass."""
    return Source(
        id=str(record["id"]),
        user_id=str(record["user_id"]),
        kind=SourceKind(record["platform"]),
        handle=record["handle"],
        display_name=record["display_name"],
        feed_url=record["feed_url"],
        priority=record["priority"],
        is_active=record["is_active"],
        last_updated=record["last_updated"],
        created_at=record["created_at"],
    )


class SourcesRepository:
    """CRUD operations for the content_sources table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the content_sources table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Content sources table ensured")

    async def upsert(self, source: Source) -> None:
        """Insert or update a single source."""
        source.validate()
        await self._db.execute(
            _UPSERT_SQL,
            source.id,
            source.user_id,
            source.kind.value,
            source.handle,
            source.display_name,
            source.feed_url,
            source.priority,
            source.is_active,
        )

    async def get_active_sources(
        self,
        user_id: str,
        priority: int | None = None,
    ) -> list[Source]:
        """Active sources for a user, optionally restricted to one tier."""
        if priority is None:
            rows = await self._db.fetch(
                """
                SELECT * FROM content_sources
                WHERE user_id = $1 AND is_active = TRUE
                ORDER BY priority, created_at
                """,
                user_id,
            )
        else:
            rows = await self._db.fetch(
                """
                SELECT * FROM content_sources
                WHERE user_id = $1 AND is_active = TRUE AND priority = $2
                ORDER BY created_at
                """,
                user_id,
                priority,
            )
        return [_record_to_source(r) for r in rows]

    async def get_users_with_active_sources(self) -> list[str]:
        """Distinct user ids owning at least one active source."""
        rows = await self._db.fetch(
            "SELECT DISTINCT user_id FROM content_sources WHERE is_active = TRUE ORDER BY user_id"
        )
        return [str(r["user_id"]) for r in rows]

    async def set_priority(self, source_id: str, priority: int) -> bool:
        """Move a source to another tier. Returns True if a row was updated."""
        result = await self._db.execute(
            "UPDATE content_sources SET priority = $2, last_updated = NOW() WHERE id = $1",
            source_id,
            priority,
        )
        return result.endswith("1")

    async def set_active(self, source_id: str, is_active: bool) -> bool:
        """Toggle a source on or off. Returns True if a row was updated."""
        result = await self._db.execute(
            "UPDATE content_sources SET is_active = $2, last_updated = NOW() WHERE id = $1",
            source_id,
            is_active,
        )
        return result.endswith("1")
