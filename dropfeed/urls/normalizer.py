"""
URL canonicalization for queue and drop deduplication.

The ingestion queue's uniqueness guarantee rests on ``normalize`` being
deterministic: two spellings of the same article must always collapse to
the same string, and normalizing an already-canonical URL must return it
unchanged.

Rules:
- reject empty input, ``data:`` URIs and URLs longer than MAX_URL_LENGTH
- scheme must be http(s); http is upgraded to https
- lowercase host, drop default port, drop fragment
- strip utm_* and click-id tracking parameters
- strip a single trailing slash from non-root paths
- YouTube video URLs collapse to https://www.youtube.com/watch?v=<id>
"""

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from dropfeed.errors import InvalidURL

MAX_URL_LENGTH = 2048

TRACKING_PARAMS: frozenset[str] = frozenset({
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "fbclid",
    "gclid",
})

YOUTUBE_HOSTS: frozenset[str] = frozenset({
    "youtube.com",
    "www.youtube.com",
    "m.youtube.com",
    "music.youtube.com",
    "youtu.be",
    "www.youtu.be",
    "youtube-nocookie.com",
    "www.youtube-nocookie.com",
})

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")

_YOUTUBE_ID_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"youtube\.com/watch\?(?:.*&)?v=([A-Za-z0-9_-]{11})"),
    re.compile(r"youtu\.be/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube(?:-nocookie)?\.com/embed/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/v/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/shorts/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/live/([A-Za-z0-9_-]{11})"),
    re.compile(r"[?&]v=([A-Za-z0-9_-]{11})"),
)


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith("utm_")


def extract_youtube_id(value: str | None) -> str | None:
    """Extract an 11-character YouTube video id from a URL or bare id.

    Returns None when nothing matches. A bare string that already looks
    like a video id is returned as-is.
    """
    if not value:
        return None

    candidate = value.strip()
    if _VIDEO_ID_RE.match(candidate):
        return candidate

    for pattern in _YOUTUBE_ID_PATTERNS:
        match = pattern.search(candidate)
        if match:
            return match.group(1)
    return None


def is_youtube_url(url: str) -> bool:
    """True if the URL points at a YouTube host."""
    try:
        host = (urlsplit(url.strip()).hostname or "").lower()
    except ValueError:
        return False
    return host in YOUTUBE_HOSTS


def youtube_watch_url(video_id: str) -> str:
    """Canonical watch URL for a video id."""
    return f"https://www.youtube.com/watch?v={video_id}"


def normalize(url: str) -> str:
    """Return the canonical form of ``url``.

    Raises:
        InvalidURL: If the input cannot be a fetchable https URL.
    """
    if url is None:
        raise InvalidURL("", "empty")

    raw = url.strip()
    if not raw:
        raise InvalidURL(url, "empty")
    if raw[:5].lower() == "data:":
        raise InvalidURL(raw[:64], "data URI")
    if len(raw) > MAX_URL_LENGTH:
        raise InvalidURL(raw[:64], f"longer than {MAX_URL_LENGTH} characters")

    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError as e:
        raise InvalidURL(raw, f"unparseable: {e}") from e

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        raise InvalidURL(raw, f"unsupported scheme {scheme or '(none)'!r}")

    host = (parts.hostname or "").lower().rstrip(".")
    if not host:
        raise InvalidURL(raw, "missing host")

    if host in YOUTUBE_HOSTS:
        video_id = extract_youtube_id(raw)
        if video_id:
            return youtube_watch_url(video_id)

    netloc = host
    if port is not None and port not in (80, 443):
        netloc = f"{host}:{port}"

    path = parts.path or "/"
    if path != "/" and path.endswith("/"):
        # A run of trailing slashes collapses with the single one
        path = path.rstrip("/") or "/"

    query_pairs = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(k)
    ]
    query = urlencode(query_pairs, doseq=True)

    canonical = urlunsplit(("https", netloc, path, query, ""))
    if len(canonical) > MAX_URL_LENGTH:
        raise InvalidURL(raw[:64], f"longer than {MAX_URL_LENGTH} characters")
    return canonical


def host_of(url: str) -> str:
    """Lowercased host of a URL without a leading ``www.``."""
    host = (urlsplit(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host
