"""Content fetching, metadata extraction, YouTube enrichment and URL discovery."""

from dropfeed.ingestion.config import IngestionConfig, YouTubeConfig
from dropfeed.ingestion.extractor import MetadataExtractor, PageMetadata, classify_content_type
from dropfeed.ingestion.feed_reader import DiscoveredURL, FeedReader
from dropfeed.ingestion.fetcher import ContentFetcher, FetchedPage
from dropfeed.ingestion.http_client import APIKeyRotator, HTTPClient, HTTPClientError, RetryConfig
from dropfeed.ingestion.scoring import authority_score, quality_score
from dropfeed.ingestion.youtube import YouTubeClient, YouTubeVideo

__all__ = [
    "APIKeyRotator",
    "ContentFetcher",
    "DiscoveredURL",
    "FeedReader",
    "FetchedPage",
    "HTTPClient",
    "HTTPClientError",
    "IngestionConfig",
    "MetadataExtractor",
    "PageMetadata",
    "RetryConfig",
    "YouTubeClient",
    "YouTubeConfig",
    "YouTubeVideo",
    "authority_score",
    "classify_content_type",
    "quality_score",
]
