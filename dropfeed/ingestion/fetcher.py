"""
Page fetcher for queue items.

Wraps HTTPClient with the ingestion timeouts and maps every transport or
HTTP failure onto FetchFailure so workers record one error type.
"""

from dataclasses import dataclass

import structlog

from dropfeed.errors import FetchFailure
from dropfeed.ingestion.config import IngestionConfig
from dropfeed.ingestion.http_client import HTTPClient, HTTPClientError, RetryConfig

logger = structlog.get_logger(__name__)

_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


@dataclass
class FetchedPage:
    """Body and metadata of a successfully fetched URL."""

    url: str
    final_url: str
    status_code: int
    content_type: str
    text: str


class ContentFetcher:
    """Fetch HTML pages and feeds with a timeout and redirect cap."""

    def __init__(
        self,
        config: IngestionConfig | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._config = config or IngestionConfig()
        self._retry_config = retry_config or RetryConfig.from_settings()

    async def fetch(self, url: str) -> FetchedPage:
        """GET ``url``.

        Raises:
            FetchFailure: Non-2xx status, timeout, network error or
                redirect loop.
        """
        try:
            async with HTTPClient(
                self._retry_config,
                timeout=self._config.fetch_timeout_seconds,
                max_redirects=self._config.max_redirects,
            ) as client:
                response = await client.get(url, headers={"Accept": _ACCEPT})
        except HTTPClientError as e:
            logger.debug("Fetch failed", url=url, status_code=e.status_code, error=str(e))
            raise FetchFailure(f"Fetch failed for {url}: {e}", status_code=e.status_code) from e

        text = response.text
        if len(text) > self._config.max_html_bytes:
            text = text[: self._config.max_html_bytes]

        return FetchedPage(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            content_type=response.headers.get("content-type", ""),
            text=text,
        )
