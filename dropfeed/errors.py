"""
Pipeline and ranking error taxonomy.

Every error carries a ``retryable`` flag. Workers record the message of a
retryable error on the queue item and let the sweep re-attempt it; they
never retry inline.
"""


class DropfeedError(Exception):
    """Base class for all dropfeed domain errors."""

    retryable: bool = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class InvalidURL(DropfeedError):
    """URL rejected by normalization (data: URI, too long, wrong scheme...)."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Invalid URL ({reason})")
        self.url = url
        self.reason = reason


class DuplicateURL(DropfeedError):
    """Soft signal: the URL is already a drop or already queued.

    Never recorded as a failure. Returned as a value by enqueue paths
    rather than raised, except where a caller needs to short-circuit.
    """

    def __init__(self, url: str, existing: str) -> None:
        super().__init__(f"Duplicate URL ({existing})")
        self.url = url
        self.existing = existing


class FetchFailure(DropfeedError):
    """Network error, timeout, non-2xx response or unparseable content."""

    retryable = True

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TaggingFailure(DropfeedError):
    """The tagging capability failed or returned an unusable result."""

    retryable = True


class EnrichmentFailure(DropfeedError):
    """YouTube metadata lookup failed.

    ``partial`` holds whatever metadata was still usable; callers may
    create a drop with degraded metadata when it is not None.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        partial: dict | None = None,
        quota_exceeded: bool = False,
    ) -> None:
        super().__init__(message)
        self.partial = partial
        self.quota_exceeded = quota_exceeded


class NoPreferences(DropfeedError):
    """Ranking precondition unmet: the user selected no topics."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id} has no topic preferences")
        self.user_id = user_id


class ConcurrentRunConflict(DropfeedError):
    """A run-now request hit a source that already has an active run."""

    def __init__(self, source_id: int) -> None:
        super().__init__(f"Source {source_id} is already running")
        self.source_id = source_id
