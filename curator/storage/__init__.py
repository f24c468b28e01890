"""Storage layer for content persistence."""

from curator.storage.database import Database
from curator.storage.repository import ContentRepository, SaveResult

__all__ = ["Database", "ContentRepository", "SaveResult"]
