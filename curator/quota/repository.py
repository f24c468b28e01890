"""Repository for the api_usage_tracking table.

One row per (user_id, platform, date). The counter only ever goes up.
"""

import logging
from dataclasses import dataclass

from curator.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS api_usage_tracking (
    user_id    TEXT NOT NULL,
    platform   TEXT NOT NULL,
    date       TEXT NOT NULL,
    calls_used INTEGER NOT NULL DEFAULT 0 CHECK (calls_used >= 0),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (user_id, platform, date)
);
"""

# Single statement so concurrent increments never lose a count
_INCREMENT_SQL = """
INSERT INTO api_usage_tracking (user_id, platform, date, calls_used)
VALUES ($1, $2, $3, 1)
ON CONFLICT (user_id, platform, date) DO UPDATE SET
    calls_used = api_usage_tracking.calls_used + 1,
    updated_at = NOW()
RETURNING calls_used
"""


@dataclass
class UsageRecord:
    """Calls consumed by a user on one platform on one UTC date."""

    user_id: str
    platform: str
    date: str
    calls_used: int = 0


class UsageRepository:
    """Storage for daily per-platform call counts."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the api_usage_tracking table (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("API usage tracking table ensured")

    async def get_usage(self, user_id: str, platform: str, date: str) -> UsageRecord | None:
        """Usage row for the given day, or None if no call was recorded."""
        row = await self._db.fetchrow(
            """
            SELECT user_id, platform, date, calls_used
            FROM api_usage_tracking
            WHERE user_id = $1 AND platform = $2 AND date = $3
            """,
            user_id,
            platform,
            date,
        )
        if row is None:
            return None
        return UsageRecord(
            user_id=str(row["user_id"]),
            platform=row["platform"],
            date=row["date"],
            calls_used=row["calls_used"],
        )

    async def increment(self, user_id: str, platform: str, date: str) -> int:
        """Add one call to the day's count. Returns the new count."""
        calls_used = await self._db.fetchval(_INCREMENT_SQL, user_id, platform, date)
        return int(calls_used or 0)
