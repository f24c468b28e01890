"""
Per-user daily call ledger for rate-limited platforms.

The check and the increment are separate calls, so two concurrent runs
for the same user can both pass the check and overshoot the limit by
one. The increment itself is atomic in SQL.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from curator.quota.config import QuotaConfig
from curator.quota.repository import UsageRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaCheck:
    """Answer to "may this user make another call today?"."""

    allowed: bool
    reason: str | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RateLimitLedger:
    """
    Tracks calls against a fixed daily limit per user and platform.

    "Today" is the UTC calendar date of the injected clock.
    """

    def __init__(
        self,
        repository: UsageRepository,
        config: QuotaConfig | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repo = repository
        self._config = config or QuotaConfig()
        self._clock = clock

    @property
    def daily_limit(self) -> int:
        return self._config.daily_limit

    def today(self) -> str:
        """Current UTC date as YYYY-MM-DD."""
        return self._clock().astimezone(timezone.utc).date().isoformat()

    async def usage(self, user_id: str, platform: str | None = None) -> int:
        """Calls used today. Storage errors propagate."""
        platform = platform or self._config.platform
        record = await self._repo.get_usage(user_id, platform, self.today())
        return record.calls_used if record else 0

    async def can_call(self, user_id: str, platform: str | None = None) -> QuotaCheck:
        """Check whether another call fits in today's limit.

        Storage failures deny the call rather than raising.
        """
        try:
            used = await self.usage(user_id, platform)
        except Exception as e:
            logger.error(f"Error checking rate limit for user {user_id}: {e}")
            return QuotaCheck(allowed=False, reason="Error checking rate limit")

        if used >= self.daily_limit:
            return QuotaCheck(
                allowed=False,
                reason=f"Daily limit reached ({used}/{self.daily_limit} calls used)",
            )
        return QuotaCheck(allowed=True)

    async def remaining(self, user_id: str, platform: str | None = None) -> int:
        """Calls left today, 0 when usage cannot be read."""
        try:
            used = await self.usage(user_id, platform)
        except Exception as e:
            logger.error(f"Error getting remaining calls for user {user_id}: {e}")
            return 0
        return max(0, self.daily_limit - used)

    async def record_call(self, user_id: str, platform: str | None = None) -> None:
        """Count one call against today. Storage failures are logged only."""
        platform = platform or self._config.platform
        try:
            calls_used = await self._repo.increment(user_id, platform, self.today())
            logger.debug(f"Recorded {platform} call for user {user_id} ({calls_used} today)")
        except Exception as e:
            logger.error(f"Error recording API call for user {user_id}: {e}")
