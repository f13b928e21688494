"""
HTML metadata extraction.

Pulls title, summary, image, site name and publish date out of a fetched
page using Open Graph tags first and plain HTML as fallback, and
classifies the page as ``article`` or ``video``.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from dropfeed.urls import is_youtube_url

# Checked in order; the first parseable, plausible value wins.
PUBLISHED_DATE_META: list[tuple[str, str]] = [
    ("property", "article:published_time"),
    ("property", "article:modified_time"),
    ("name", "publish_date"),
    ("name", "publication_date"),
    ("name", "date"),
    ("property", "og:updated_time"),
    ("name", "DC.Date"),
    ("name", "dcterms.created"),
]

MAX_SUMMARY_CHARS = 1000


def clean_text(text: str) -> str:
    """Collapse whitespace and drop control characters."""
    text = " ".join(text.split())
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)
    return text.strip()


def parse_date(value: str, max_age_years: int = 10, now: datetime | None = None) -> datetime | None:
    """Parse an ISO-8601 or RFC 2822 date.

    Returns None for unparseable values, dates in the future and dates
    older than ``max_age_years``. Naive values are taken as UTC.
    """
    if not value or not value.strip():
        return None
    value = value.strip()

    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    # Small allowance for publisher clock skew.
    if parsed > now + timedelta(minutes=5):
        return None
    if parsed < now - timedelta(days=365 * max_age_years):
        return None
    return parsed


def classify_content_type(url: str, og_type: str | None) -> str:
    """``video`` for YouTube URLs or an ``og:type`` of video.*, else ``article``."""
    if is_youtube_url(url):
        return "video"
    if og_type and og_type.strip().lower().startswith("video"):
        return "video"
    return "article"


@dataclass
class PageMetadata:
    """Metadata extracted from one HTML page."""

    title: str | None = None
    summary: str = ""
    image_url: str | None = None
    site_name: str | None = None
    og_type: str | None = None
    published_at: datetime | None = None
    content_type: str = "article"


class MetadataExtractor:
    """Extract PageMetadata from HTML with BeautifulSoup."""

    def __init__(self, max_date_age_years: int = 10) -> None:
        self._max_date_age_years = max_date_age_years

    def extract(self, html: str, url: str) -> PageMetadata:
        soup = BeautifulSoup(html, "html.parser")

        og_type = self._meta(soup, "property", "og:type")
        title = self._meta(soup, "property", "og:title")
        if not title and soup.title and soup.title.string:
            title = soup.title.string
        if not title:
            h1 = soup.find("h1")
            if h1:
                title = h1.get_text(" ", strip=True)

        summary = (
            self._meta(soup, "property", "og:description")
            or self._meta(soup, "name", "description")
            or ""
        )

        image_url = self._meta(soup, "property", "og:image") or self._meta(
            soup, "name", "twitter:image"
        )
        if image_url:
            image_url = urljoin(url, image_url)

        return PageMetadata(
            title=clean_text(title) if title else None,
            summary=clean_text(summary)[:MAX_SUMMARY_CHARS],
            image_url=image_url,
            site_name=self._meta(soup, "property", "og:site_name"),
            og_type=og_type,
            published_at=self.extract_published_date(soup),
            content_type=classify_content_type(url, og_type),
        )

    def extract_published_date(self, soup: BeautifulSoup) -> datetime | None:
        for attr, key in PUBLISHED_DATE_META:
            value = self._meta(soup, attr, key)
            if value:
                parsed = parse_date(value, self._max_date_age_years)
                if parsed:
                    return parsed

        for time_el in soup.find_all("time", attrs={"datetime": True}):
            parsed = parse_date(time_el["datetime"], self._max_date_age_years)
            if parsed:
                return parsed
        return None

    @staticmethod
    def _meta(soup: BeautifulSoup, attr: str, key: str) -> str | None:
        tag = soup.find("meta", attrs={attr: key})
        if tag is None:
            return None
        content = tag.get("content")
        if not content or not str(content).strip():
            return None
        return str(content).strip()
