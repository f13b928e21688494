"""dropfeed: content ingestion pipeline and personalized feed ranking."""

__version__ = "0.1.0"
