"""
URL discovery for sources.

- rss: entries of the source's RSS/Atom feed (feedparser)
- youtube: entries of the channel uploads feed
- website: article-looking links on the homepage (BeautifulSoup)

Discovery returns raw URLs; normalization and dedup are the scheduler's
job. A feed that cannot be fetched or parsed raises FetchFailure so the
run is recorded as a top-level error.
"""

import calendar
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urljoin, urlsplit

import feedparser
import structlog
from bs4 import BeautifulSoup

from dropfeed.errors import FetchFailure
from dropfeed.ingestion.config import IngestionConfig, YouTubeConfig
from dropfeed.ingestion.fetcher import ContentFetcher
from dropfeed.sources.schemas import Source
from dropfeed.urls import host_of

logger = structlog.get_logger(__name__)

_CHANNEL_ID_RE = re.compile(r"(UC[A-Za-z0-9_-]{22})")

# Homepage links under these first path segments are navigation, not articles.
_NAV_SEGMENTS = frozenset({
    "about", "author", "authors", "category", "categories", "contact", "login",
    "page", "privacy", "search", "signup", "subscribe", "tag", "tags", "terms",
})
_SKIP_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".svg", ".pdf", ".zip", ".xml", ".css", ".js")


@dataclass
class DiscoveredURL:
    """A URL found while polling a source, before normalization."""

    url: str
    title: str | None = None
    published_at: str | None = None
    channel_id: str | None = None


def youtube_channel_id(source: Source) -> str | None:
    """Channel id from the source's feed URL or homepage, if present."""
    for candidate in (source.feed_url, source.homepage_url):
        if candidate:
            match = _CHANNEL_ID_RE.search(candidate)
            if match:
                return match.group(1)
    return None


def _entry_published(entry: dict) -> str | None:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc).isoformat()


def parse_feed_entries(text: str, limit: int) -> list[DiscoveredURL]:
    """Parse feed XML into DiscoveredURLs.

    Raises:
        FetchFailure: The document is not a feed (malformed with no entries).
    """
    feed = feedparser.parse(text)
    entries = feed.get("entries", [])
    if feed.get("bozo") and not entries:
        raise FetchFailure(f"Unparseable feed: {feed.get('bozo_exception')}")

    found: list[DiscoveredURL] = []
    for entry in entries[:limit]:
        link = entry.get("link")
        if not link:
            continue
        found.append(
            DiscoveredURL(
                url=link.strip(),
                title=(entry.get("title") or "").strip() or None,
                published_at=_entry_published(entry),
                channel_id=entry.get("yt_channelid"),
            )
        )
    return found


def extract_article_links(html: str, base_url: str, limit: int) -> list[str]:
    """Same-host links from a homepage that look like article pages."""
    soup = BeautifulSoup(html, "html.parser")
    base_host = host_of(base_url)
    seen: set[str] = set()
    links: list[str] = []

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(("#", "mailto:", "javascript:", "tel:")):
            continue
        absolute = urljoin(base_url, href)
        parts = urlsplit(absolute)
        if parts.scheme not in ("http", "https") or host_of(absolute) != base_host:
            continue

        segments = [s for s in parts.path.split("/") if s]
        if not segments or segments[0].lower() in _NAV_SEGMENTS:
            continue
        if parts.path.lower().endswith(_SKIP_EXTENSIONS):
            continue
        # Single short segments are usually section indexes ("/news", "/blog").
        if len(segments) == 1 and "-" not in segments[0] and not segments[0].endswith(".html"):
            continue

        absolute = absolute.split("#", 1)[0]
        if absolute in seen:
            continue
        seen.add(absolute)
        links.append(absolute)
        if len(links) >= limit:
            break
    return links


class FeedReader:
    """Discover candidate URLs for a source."""

    def __init__(
        self,
        fetcher: ContentFetcher | None = None,
        config: IngestionConfig | None = None,
        youtube_config: YouTubeConfig | None = None,
    ) -> None:
        self._config = config or IngestionConfig()
        self._youtube_config = youtube_config or YouTubeConfig()
        self._fetcher = fetcher or ContentFetcher(self._config)

    def feed_url_for(self, source: Source) -> str | None:
        """The URL polled for ``source``; None when it has nothing pollable."""
        if source.type == "youtube":
            channel_id = youtube_channel_id(source)
            if channel_id:
                return self._youtube_config.channel_feed_url.format(channel_id=channel_id)
            return source.feed_url
        if source.type == "website":
            return source.feed_url or source.homepage_url
        return source.feed_url

    async def discover(self, source: Source) -> list[DiscoveredURL]:
        """Poll ``source`` once.

        Raises:
            FetchFailure: The feed or homepage is unreachable or unparseable.
        """
        target = self.feed_url_for(source)
        if not target:
            raise FetchFailure(f"Source {source.id} has no feed URL or channel id")

        page = await self._fetcher.fetch(target)
        limit = self._config.max_entries_per_feed

        if source.type == "website" and not source.feed_url:
            links = extract_article_links(page.text, page.final_url, limit)
            found = [DiscoveredURL(url=u) for u in links]
        else:
            found = parse_feed_entries(page.text, limit)

        logger.debug("Discovered URLs", source_id=source.id, type=source.type, count=len(found))
        return found
