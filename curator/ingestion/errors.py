"""
Error taxonomy for the curation engine.

Fetch clients report failures as tagged results; these exceptions are
what callers raise when a failure has to cross a function boundary
(per-source error records, the top-level run, convenience helpers).
"""


class CurationError(Exception):
    """Base exception for curation failures."""


class NoActiveSourcesError(CurationError):
    """Raised when a user has no active sources to curate from."""

    def __init__(self, message: str = "No active content sources found"):
        super().__init__(message)


class RateLimitExceededError(CurationError):
    """Raised when the daily call quota for a platform is exhausted."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class SourceFetchFailedError(CurationError):
    """A single source failed during a curation run.

    Never propagated out of a run; collected on the result instead.
    """

    def __init__(self, source_id: str, cause: Exception | str):
        self.source_id = source_id
        self.cause = cause
        super().__init__(f"Source {source_id} failed: {cause}")


class FeedParseError(CurationError):
    """Raised when feed text cannot be parsed as RSS or Atom."""


class FeedTimeoutError(CurationError):
    """Raised when a feed fetch exceeds its client-side timeout."""


class NotXmlError(CurationError):
    """Raised when a feed response is empty or does not look like XML."""


class UpstreamError(CurationError):
    """Raised for non-2xx responses from an upstream service."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(CurationError):
    """Raised for DNS, connection and transport failures."""


class HandleNotFoundError(CurationError):
    """Raised when a social handle cannot be resolved to an account."""


class CurationTimeoutError(CurationError):
    """Raised when a whole curation run exceeds its configured deadline."""


class DuplicateItemError(CurationError):
    """A content item collided with an existing (source_id, platform_id) key.

    Treated as success by the persistence path.
    """


def is_duplicate_error(exc: BaseException) -> bool:
    """Check whether a persistence error is a dedup-key collision."""
    if isinstance(exc, DuplicateItemError):
        return True
    return "duplicate" in str(exc).lower()
