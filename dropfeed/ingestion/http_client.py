"""
Outbound HTTP for page fetches, the YouTube Data API and the tagging
capability.

Every call has a timeout, a redirect cap and a small retry budget for 429,
transient 5xx and transport errors. Whatever still fails is raised as
``HTTPClientError``; longer-horizon retry belongs to the queue sweep, not
to this module.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any

import httpx

from dropfeed.config.settings import get_settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})

_TRANSIENT_ERRORS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.RemoteProtocolError,
)


@dataclass
class APIKeyRotator:
    """Hands out keys round-robin; YouTube quota is tracked per key."""

    keys: list[str]
    _next: int = field(default=0, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def from_env_var(cls, value: str | None) -> "APIKeyRotator | None":
        """Parse ``"k1,k2"``; None when nothing usable is configured."""
        keys = [k.strip() for k in (value or "").split(",") if k.strip()]
        return cls(keys=keys) if keys else None

    async def get_key(self) -> str:
        async with self._lock:
            key = self.keys[self._next]
            self._next = (self._next + 1) % len(self.keys)
        return key


@dataclass
class RetryConfig:
    """Backoff is ``min(cap, base * 2**attempt)`` plus up to ``jitter_factor`` of it."""

    max_retries: int = 2
    max_backoff_seconds: float = 30.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        settings = get_settings()
        return cls(
            max_retries=settings.max_http_retries,
            max_backoff_seconds=settings.max_backoff_seconds,
        )

    def calculate_backoff(self, attempt: int) -> float:
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay * (1 + self.jitter_factor * random.random())

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in RETRYABLE_STATUSES

    def is_retryable_exception(self, exc: Exception) -> bool:
        return isinstance(exc, _TRANSIENT_ERRORS)


class HTTPClientError(Exception):
    """Non-2xx after retries, transport failure or redirect loop."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Still answered 429 after the last retry."""


class HTTPClient:
    """
    Async client used as a context manager, one per logical call.

    Example:
        async with HTTPClient(RetryConfig(max_retries=1), timeout=15.0) as client:
            response = await client.get(url, api_key_rotator=rotator, api_key_param="key")
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        max_redirects: int = 5,
        user_agent: str | None = None,
    ):
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.user_agent = user_agent or get_settings().http_user_agent
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            max_redirects=self.max_redirects,
            headers={"User-Agent": self.user_agent},
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        api_key_rotator: APIKeyRotator | None = None,
        api_key_param: str | None = None,
    ) -> httpx.Response:
        """GET ``url``. A rotated key, when given, goes in query param ``api_key_param``."""
        return await self.request(
            "GET",
            url,
            params=params,
            headers=headers,
            api_key_rotator=api_key_rotator,
            api_key_param=api_key_param,
        )

    async def post(
        self,
        url: str,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await self.request("POST", url, headers=headers, json_body=json_body)

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        api_key_rotator: APIKeyRotator | None = None,
        api_key_param: str | None = None,
    ) -> httpx.Response:
        """
        Send with bounded retry.

        Raises:
            RateLimitError: 429 on the final attempt.
            HTTPClientError: Any other failure.
            RuntimeError: Used outside ``async with``.
        """
        if self._client is None:
            raise RuntimeError("HTTPClient must be used as async context manager")

        attempts = self.retry_config.max_retries + 1
        attempt = -1
        while True:
            attempt += 1
            last = attempt >= attempts - 1
            query = dict(params or {})
            if api_key_rotator is not None and api_key_param:
                query[api_key_param] = await api_key_rotator.get_key()

            try:
                response = await self._client.request(
                    method, url, params=query or None, headers=headers, json=json_body
                )
            except httpx.TooManyRedirects as e:
                raise HTTPClientError(
                    f"Too many redirects (>{self.max_redirects}) for {url}"
                ) from e
            except _TRANSIENT_ERRORS as e:
                if last:
                    raise HTTPClientError(
                        f"{type(e).__name__} after {attempts} attempts: {e}"
                    ) from e
                await self._backoff(attempt, url, type(e).__name__)
                continue
            except httpx.HTTPError as e:
                raise HTTPClientError(f"{type(e).__name__}: {e}") from e

            status = response.status_code
            if self.retry_config.is_retryable_status(status) and not last:
                await self._backoff(attempt, url, f"HTTP {status}")
                continue
            if status >= 400:
                error_cls = RateLimitError if status == 429 else HTTPClientError
                raise error_cls(
                    f"HTTP {status}" + (f" after {attempts} attempts" if attempt else ""),
                    status_code=status,
                    response_body=response.text,
                )
            return response

    async def _backoff(self, attempt: int, url: str, reason: str) -> None:
        delay = self.retry_config.calculate_backoff(attempt)
        logger.warning(
            "%s from %s, retry %d/%d in %.2fs",
            reason, url, attempt + 1, self.retry_config.max_retries, delay,
        )
        await asyncio.sleep(delay)
