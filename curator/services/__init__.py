"""Curation services: per-user runs, scheduling and wiring."""

from curator.services.config import CurationConfig, SchedulerConfig
from curator.services.container import Services, build_services
from curator.services.curation_service import (
    CurationOrchestrator,
    CurationResult,
    CurationState,
)
from curator.services.scheduler import CurationScheduler, ScheduledJob, UserStats

__all__ = [
    "CurationConfig",
    "CurationOrchestrator",
    "CurationResult",
    "CurationScheduler",
    "CurationState",
    "ScheduledJob",
    "SchedulerConfig",
    "Services",
    "UserStats",
    "build_services",
]
