"""Daily call quota tracking and budget allocation."""

from curator.quota.allocator import allocate_calls
from curator.quota.config import QuotaConfig
from curator.quota.ledger import QuotaCheck, RateLimitLedger
from curator.quota.repository import UsageRecord, UsageRepository

__all__ = [
    "QuotaCheck",
    "QuotaConfig",
    "RateLimitLedger",
    "UsageRecord",
    "UsageRepository",
    "allocate_calls",
]
