"""HTTP middleware."""

from dropfeed.api.middleware.timeout import TimeoutMiddleware

__all__ = ["TimeoutMiddleware"]
