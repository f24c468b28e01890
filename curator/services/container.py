"""Explicit wiring of the curation services around one Database."""

from dataclasses import dataclass

from curator.config.settings import Settings, get_settings
from curator.ingestion.feed_client import FeedClient
from curator.ingestion.social_client import SocialClient
from curator.observability.metrics import CurationMetrics
from curator.quota.ledger import RateLimitLedger
from curator.quota.repository import UsageRepository
from curator.services.config import CurationConfig, SchedulerConfig
from curator.services.curation_service import CurationOrchestrator
from curator.services.scheduler import CurationScheduler
from curator.sources.repository import SourcesRepository
from curator.storage.database import Database
from curator.storage.repository import ContentRepository


@dataclass
class Services:
    database: Database
    sources: SourcesRepository
    content: ContentRepository
    usage: UsageRepository
    ledger: RateLimitLedger
    orchestrator: CurationOrchestrator
    scheduler: CurationScheduler
    metrics: CurationMetrics | None = None

    async def create_tables(self) -> None:
        """Create every table the services use, in dependency order."""
        await self.sources.create_table()
        await self.content.create_tables()
        await self.usage.create_table()


def build_services(
    database: Database,
    settings: Settings | None = None,
    metrics: CurationMetrics | None = None,
    curation_config: CurationConfig | None = None,
    scheduler_config: SchedulerConfig | None = None,
) -> Services:
    """
    Construct the repositories, ledger, orchestrator and scheduler.

    Nothing is started here; call scheduler.start() explicitly.
    """
    settings = settings or get_settings()
    if metrics is None and settings.metrics_enabled:
        metrics = CurationMetrics()

    sources = SourcesRepository(database)
    content = ContentRepository(database)
    usage = UsageRepository(database)
    ledger = RateLimitLedger(usage)

    orchestrator = CurationOrchestrator(
        sources=sources,
        content=content,
        ledger=ledger,
        feed_client=FeedClient(user_agent=settings.user_agent),
        social_client=SocialClient(
            bearer_token=settings.twitter_bearer_token,
            user_agent=settings.user_agent,
        ),
        config=curation_config,
        metrics=metrics,
    )
    scheduler = CurationScheduler(orchestrator, ledger, config=scheduler_config)

    return Services(
        database=database,
        sources=sources,
        content=content,
        usage=usage,
        ledger=ledger,
        orchestrator=orchestrator,
        scheduler=scheduler,
        metrics=metrics,
    )
