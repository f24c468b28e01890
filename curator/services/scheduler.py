"""
Daily curation scheduler.

Each scheduled user gets three jobs a day, one per priority tier:
09:00 for tier 1, 14:00 for tier 2 and 19:00 for tier 3, local time.
A background tick runs due jobs through the orchestrator. A job is
marked executed whether its run succeeded or not; failed runs are
logged and never retried.

The tick task only exists between start() and stop().
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

import structlog

from curator.quota.ledger import RateLimitLedger
from curator.services.config import SchedulerConfig
from curator.services.curation_service import CurationOrchestrator

logger = structlog.get_logger(__name__)

# (hour, priority tier)
DEFAULT_SLOTS: tuple[tuple[int, int], ...] = ((9, 1), (14, 2), (19, 3))

NEXT_JOBS_LIMIT = 3


@dataclass
class ScheduledJob:
    """One pending or executed tier run for a user."""

    user_id: str
    scheduled_for: datetime
    priority: int
    executed: bool = False

    @property
    def key(self) -> tuple[str, datetime, int]:
        return (self.user_id, self.scheduled_for, self.priority)


@dataclass
class UserStats:
    """Quota usage and upcoming jobs for one user."""

    calls_used_today: int
    calls_remaining: int
    daily_limit: int
    next_scheduled_jobs: list[ScheduledJob] = field(default_factory=list)


class CurationScheduler:
    """
    Time-of-day scheduler for tiered curation runs.

    Usage:
        scheduler = CurationScheduler(orchestrator, ledger)
        scheduler.schedule_user("user-1")
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        orchestrator: CurationOrchestrator,
        ledger: RateLimitLedger,
        config: SchedulerConfig | None = None,
        slots: tuple[tuple[int, int], ...] = DEFAULT_SLOTS,
    ):
        self._orchestrator = orchestrator
        self._ledger = ledger
        self._config = config or SchedulerConfig()
        self._slots = slots
        self._tz: tzinfo | None = ZoneInfo(self._config.timezone) if self._config.timezone else None
        self._jobs: list[ScheduledJob] = []
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs)

    def now(self) -> datetime:
        """Current aware time in the scheduler's zone."""
        return datetime.now(self._tz).astimezone(self._tz)

    def schedule_user(self, user_id: str, now: datetime | None = None) -> list[ScheduledJob]:
        """
        Add one job per slot for the user.

        A slot whose time today is at or before `now` is scheduled for
        tomorrow. Scheduling the same user twice does not duplicate jobs.

        Returns:
            Jobs that were newly added
        """
        now = now or self.now()
        existing = {job.key for job in self._jobs}
        added = []

        for hour, priority in self._slots:
            scheduled_for = datetime.combine(now.date(), time(hour=hour), tzinfo=now.tzinfo)
            if scheduled_for <= now:
                scheduled_for += timedelta(days=1)

            job = ScheduledJob(user_id=user_id, scheduled_for=scheduled_for, priority=priority)
            if job.key in existing:
                continue
            self._jobs.append(job)
            existing.add(job.key)
            added.append(job)

        logger.info(
            "User scheduled",
            user_id=user_id,
            jobs=[j.scheduled_for.isoformat() for j in added],
        )
        return added

    def start(self) -> None:
        """Start the periodic tick. Does nothing if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._tick_loop(), name="curation_scheduler")
        logger.info("Scheduler started", tick_interval=self._config.tick_interval_seconds)

    async def stop(self) -> None:
        """Cancel the tick task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Scheduler stopped")

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.tick_interval_seconds)
            try:
                await self.run_due_jobs()
            except Exception as e:
                logger.error("Scheduler tick failed", error=str(e))

    async def run_due_jobs(self, now: datetime | None = None) -> int:
        """
        Run every unexecuted job due at or before `now`, then prune.

        Returns:
            Number of jobs executed (successful or not)
        """
        now = now or self.now()
        due = [job for job in self._jobs if not job.executed and job.scheduled_for <= now]

        for job in due:
            logger.info("Executing curation job", user_id=job.user_id, priority=job.priority)
            try:
                saved = await self._orchestrator.curate_and_save(job.user_id, priority=job.priority)
                logger.info(
                    "Curation job completed",
                    user_id=job.user_id,
                    priority=job.priority,
                    saved=saved,
                )
            except Exception as e:
                logger.error(
                    "Curation job failed",
                    user_id=job.user_id,
                    priority=job.priority,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            job.executed = True

        cutoff = now - timedelta(hours=self._config.retention_hours)
        self._jobs = [job for job in self._jobs if not job.executed or job.scheduled_for > cutoff]
        return len(due)

    def pending_jobs(self, user_id: str) -> list[ScheduledJob]:
        """Unexecuted jobs for a user, soonest first."""
        return sorted(
            (job for job in self._jobs if job.user_id == user_id and not job.executed),
            key=lambda job: job.scheduled_for,
        )

    async def get_user_stats(self, user_id: str) -> UserStats:
        """Today's quota usage and the next few jobs for a user."""
        try:
            used = await self._ledger.usage(user_id)
        except Exception as e:
            logger.error("Error getting user stats", user_id=user_id, error=str(e))
            return UserStats(
                calls_used_today=0,
                calls_remaining=0,
                daily_limit=self._ledger.daily_limit,
            )

        return UserStats(
            calls_used_today=used,
            calls_remaining=await self._ledger.remaining(user_id),
            daily_limit=self._ledger.daily_limit,
            next_scheduled_jobs=self.pending_jobs(user_id)[:NEXT_JOBS_LIMIT],
        )
