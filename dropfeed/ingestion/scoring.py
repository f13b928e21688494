"""
Catalog scoring heuristics.

Authority and quality are user-independent priors stored on each drop and
consumed by ranking as the "trust" part of the catalog score.
"""

import re

from dropfeed.sources.schemas import Source
from dropfeed.urls import host_of

UNKNOWN_SOURCE_AUTHORITY = 0.3
BASE_SCORE = 0.5

# Host suffix -> authority bonus
DOMAIN_AUTHORITY_BONUS: dict[str, float] = {
    "arxiv.org": 0.3,
    "youtube.com": 0.2,
    "github.com": 0.2,
    "medium.com": 0.1,
}

CLICKBAIT_PATTERNS = [
    re.compile(r"\d+ (tricks?|secrets?|tips?)", re.IGNORECASE),
    re.compile(r"you won'?t believe", re.IGNORECASE),
    re.compile(r"this will shock you", re.IGNORECASE),
    re.compile(r"doctors hate", re.IGNORECASE),
]


def _clamp(score: float) -> float:
    return round(max(0.1, min(1.0, score)), 4)


def authority_score(source: Source | None, url: str) -> float:
    """Source reputation prior.

    Drops without a source get a low fixed authority. Official sources and
    a handful of well-known hosts are boosted.
    """
    if source is None:
        return UNKNOWN_SOURCE_AUTHORITY

    score = BASE_SCORE
    if source.official:
        score += 0.3

    host = host_of(url)
    for domain, bonus in DOMAIN_AUTHORITY_BONUS.items():
        if host == domain or host.endswith("." + domain):
            score += bonus
            break
    return _clamp(score)


def quality_score(title: str, summary: str, image_url: str | None, content_type: str) -> float:
    """Content-shape prior from title, summary length, image and type."""
    title = title.strip()
    summary = summary.strip()
    score = BASE_SCORE

    if 10 <= len(title) <= 100:
        score += 0.1
    if any(marker in title for marker in ("?", ":", "How", "Why")):
        score += 0.1

    if len(summary) >= 50:
        score += 0.1
    if len(summary) >= 200:
        score += 0.1

    if image_url:
        score += 0.1
    if content_type == "video":
        score += 0.1

    if any(p.search(title) for p in CLICKBAIT_PATTERNS):
        score -= 0.2

    return _clamp(score)
