"""Sources: user-owned social accounts and feeds."""

from curator.sources.repository import SourcesRepository
from curator.sources.schemas import PRIORITY_TIERS, Source, SourceKind

__all__ = [
    "PRIORITY_TIERS",
    "Source",
    "SourceKind",
    "SourcesRepository",
]
