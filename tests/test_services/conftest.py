"""Shared fixtures for curation service tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from curator.quota.config import QuotaConfig
from curator.quota.ledger import RateLimitLedger
from curator.services.config import CurationConfig
from curator.storage.repository import SaveResult


@pytest.fixture
def zero_delay_config() -> CurationConfig:
    """Curation pacing with every pause disabled."""
    return CurationConfig(
        feed_delay_seconds=0,
        social_delay_seconds=0,
        rate_limit_wait_seconds=0,
    )


@pytest.fixture
def ledger(usage_repo) -> RateLimitLedger:
    """Ledger with a limit of 3 pinned to 2024-01-15 UTC."""
    return RateLimitLedger(
        usage_repo,
        config=QuotaConfig(daily_limit=3),
        clock=lambda: datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def sources_repo() -> AsyncMock:
    repo = AsyncMock()
    repo.get_active_sources = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def content_repo() -> AsyncMock:
    repo = AsyncMock()
    repo.save_items = AsyncMock(return_value=SaveResult())
    return repo
