"""Daily API quota configuration.

Overridable via ``QUOTA_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QuotaConfig(BaseSettings):
    """Configuration for the per-user daily call ledger."""

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_",
        case_sensitive=False,
        extra="ignore",
    )

    daily_limit: int = Field(
        default=3,
        ge=0,
        description="Rate-limited platform calls allowed per user per UTC day",
    )
    platform: str = Field(
        default="twitter",
        description="Platform name the ledger counts by default",
    )
