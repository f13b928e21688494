"""HTTP API for dropfeed."""

from dropfeed.api.app import create_app

__all__ = ["create_app"]
