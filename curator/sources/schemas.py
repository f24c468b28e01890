"""Data models for the sources module."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SourceKind(str, Enum):
    """Source types, stored in the platform column."""

    SOCIAL = "twitter"
    FEED = "rss"


# Priority tiers, 1 = highest
PRIORITY_TIERS = (1, 2, 3)


@dataclass
class Source:
    """A user-owned subscription to one social account or feed.

    Read-only to the curation engine: created and toggled by the user,
    never mutated by a curation run.
    """

    id: str
    user_id: str
    kind: SourceKind
    handle: str
    display_name: str | None = None
    feed_url: str | None = None
    priority: int = 1
    is_active: bool = True
    last_updated: datetime | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        self.kind = SourceKind(self.kind)

    @property
    def label(self) -> str:
        """Human-readable name used in progress messages."""
        return self.display_name or self.handle

    @property
    def is_feed(self) -> bool:
        return self.kind is SourceKind.FEED

    @property
    def is_social(self) -> bool:
        return self.kind is SourceKind.SOCIAL

    def validate(self) -> None:
        """Raise ValueError if the source violates its kind's invariants."""
        if self.is_feed and not self.feed_url:
            raise ValueError(f"Feed source {self.id} has no feed_url")
        if self.is_social and not self.handle:
            raise ValueError(f"Social source {self.id} has no handle")
        if self.priority not in PRIORITY_TIERS:
            raise ValueError(f"Source {self.id} has invalid priority {self.priority}")
