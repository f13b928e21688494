"""
Tagging capability client and taxonomy resolution.

The tagging capability itself (an LLM-backed classifier) lives outside
this codebase. Its contract is: text in, topic slugs plus a done flag
out. ``TaggingService`` wraps that call with the operator-editable
parameter store and maps the returned slugs onto the topic taxonomy,
enforcing exactly one L1, at most one L2 and at most ``max_l3`` L3 tags.
"""

import time
from typing import Any

import structlog

from dropfeed.errors import TaggingFailure
from dropfeed.ingestion.http_client import HTTPClient, HTTPClientError, RetryConfig
from dropfeed.tagging.config import TaggingConfig
from dropfeed.tagging.repository import TaggingParamsRepository, TopicRepository
from dropfeed.tagging.schemas import ResolvedTags, TaggingResult, Topic

logger = structlog.get_logger(__name__)


def _as_slug_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [str(v) for v in value if v and str(v).strip()]


def parse_tagging_response(data: dict[str, Any]) -> TaggingResult:
    """Parse the capability's JSON body into a TaggingResult.

    Accepts ``l1``/``l2`` as a string or a list (first entry wins) and
    ``l3`` as a list. A missing ``done`` flag means success.
    """
    l1 = _as_slug_list(data.get("l1"))
    l2 = _as_slug_list(data.get("l2"))
    return TaggingResult(
        l1=l1[0].strip().lower() if l1 else None,
        l2=l2[0].strip().lower() if l2 else None,
        l3=[s.strip().lower() for s in _as_slug_list(data.get("l3"))],
        done=bool(data.get("done", True)),
    )


def resolve_tags(
    result: TaggingResult,
    topics_by_slug: dict[str, Topic],
    max_l3: int,
) -> ResolvedTags:
    """Map slugs onto the taxonomy.

    Unknown slugs and slugs at the wrong level are dropped. An L2 whose
    parent is not the chosen L1 is dropped. L3 tags are de-duplicated and
    capped at ``max_l3``.
    """
    resolved = ResolvedTags()

    l1 = topics_by_slug.get(result.l1 or "")
    if l1 is not None and l1.level == 1:
        resolved.l1_topic_id = l1.id
        resolved.tags.append(l1.slug)
    else:
        l1 = None

    l2 = topics_by_slug.get(result.l2 or "")
    if l2 is not None and l2.level == 2 and (l1 is None or l2.parent_id in (None, l1.id)):
        resolved.l2_topic_id = l2.id
        resolved.tags.append(l2.slug)

    l3_kept: list[str] = []
    for slug in result.l3:
        if len(l3_kept) >= max_l3:
            break
        topic = topics_by_slug.get(slug)
        if topic is None or topic.level != 3 or slug in l3_kept:
            continue
        l3_kept.append(slug)
    resolved.tags.extend(l3_kept)
    return resolved


class TaggingService:
    """Tag text through the external capability and resolve to topic ids."""

    def __init__(
        self,
        params_repository: TaggingParamsRepository,
        topic_repository: TopicRepository,
        config: TaggingConfig | None = None,
    ) -> None:
        self._config = config or TaggingConfig()
        self._params_repo = params_repository
        self._topic_repo = topic_repository

        self._params_cache: dict[str, str] | None = None
        self._params_cached_at: float = 0.0
        self._topics_cache: dict[str, Topic] | None = None

    async def get_params(self) -> dict[str, str]:
        """Tagging parameters, cached for ``params_cache_ttl_seconds``."""
        now = time.monotonic()
        if (
            self._params_cache is not None
            and now - self._params_cached_at < self._config.params_cache_ttl_seconds
        ):
            return self._params_cache
        self._params_cache = await self._params_repo.get_all()
        self._params_cached_at = now
        return self._params_cache

    async def get_topics(self) -> dict[str, Topic]:
        if self._topics_cache is None:
            topics = await self._topic_repo.list_all()
            self._topics_cache = {t.slug: t for t in topics}
        return self._topics_cache

    def invalidate_cache(self) -> None:
        self._params_cache = None
        self._params_cached_at = 0.0
        self._topics_cache = None

    def _max_l3(self, params: dict[str, str]) -> int:
        raw = params.get("max_l3")
        if raw is None:
            return self._config.default_max_l3
        try:
            return max(0, int(raw))
        except ValueError:
            logger.warning("Ignoring non-integer max_l3 tagging param", value=raw)
            return self._config.default_max_l3

    async def call_capability(self, text: str, params: dict[str, str]) -> TaggingResult:
        """POST text to the capability.

        Raises:
            TaggingFailure: Transport error, non-2xx or malformed body.
        """
        headers = {}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"

        body = {"text": text[: self._config.max_text_chars], "params": params}
        try:
            async with HTTPClient(
                RetryConfig(max_retries=1),
                timeout=self._config.timeout_seconds,
            ) as client:
                response = await client.post(
                    self._config.endpoint_url, json_body=body, headers=headers
                )
            data = response.json()
        except HTTPClientError as e:
            raise TaggingFailure(f"Tagging request failed: {e}") from e
        except ValueError as e:
            raise TaggingFailure(f"Tagging response was not JSON: {e}") from e

        if not isinstance(data, dict):
            raise TaggingFailure("Tagging response was not a JSON object")
        return parse_tagging_response(data)

    async def tag_text(self, text: str) -> ResolvedTags:
        """Tag ``text`` and resolve the slugs.

        Raises:
            TaggingFailure: The capability failed or reported done=false.
        """
        if not text or not text.strip():
            raise TaggingFailure("Nothing to tag: empty text")

        params = await self.get_params()
        result = await self.call_capability(text, params)
        if not result.done:
            raise TaggingFailure("Tagging capability reported not done")

        topics = await self.get_topics()
        resolved = resolve_tags(result, topics, self._max_l3(params))
        logger.debug(
            "Tagged text",
            slugs=result.slugs,
            kept=resolved.tags,
            l1_topic_id=resolved.l1_topic_id,
        )
        return resolved
