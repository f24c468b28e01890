"""Curation orchestrator and scheduler configuration.

Defaults reproduce the production pacing: a 1s pause between feeds, a
60s pause between social sources and a 15 minute wait before retrying a
rate-limited call. Tests override them with zero delays.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CurationConfig(BaseSettings):
    """Configuration for a single curation run."""

    model_config = SettingsConfigDict(
        env_prefix="CURATION_",
        case_sensitive=False,
        extra="ignore",
    )

    feed_item_limit: int = Field(
        default=10,
        ge=1,
        description="Items normalized per feed per run",
    )
    feed_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Pause between consecutive feed fetches",
    )
    social_delay_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Pause between consecutive social sources",
    )
    rate_limit_wait_seconds: float = Field(
        default=900.0,
        ge=0.0,
        description="Wait before retrying a call that hit HTTP 429",
    )
    rate_limit_max_retries: int = Field(
        default=2,
        ge=0,
        description="Retries per social source, only for rate-limited calls",
    )
    social_posts_per_source: int = Field(
        default=1,
        ge=1,
        description="Hard cap on posts fetched per social source, regardless of allocation",
    )
    run_timeout_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Overall deadline for one run (unset = no deadline)",
    )


class SchedulerConfig(BaseSettings):
    """Configuration for the daily curation scheduler."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        case_sensitive=False,
        extra="ignore",
    )

    tick_interval_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="How often due jobs are checked",
    )
    retention_hours: int = Field(
        default=24,
        ge=1,
        description="Executed jobs older than this are pruned",
    )
    timezone: str | None = Field(
        default=None,
        description="IANA zone for slot times (unset = system local time)",
    )
