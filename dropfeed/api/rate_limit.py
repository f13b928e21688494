"""
slowapi limiter shared by every router.

Off unless RATE_LIMIT_ENABLED=true. Limits are read per route from
settings (``rate_limit_default``, ``rate_limit_feed``, ``rate_limit_admin``);
when on, counters are stored in Redis so all API processes share them.
"""

import hashlib

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from dropfeed.config.settings import get_settings


def rate_limit_key(request: Request) -> str:
    """Caller identity: a digest of the X-API-KEY header, else the client IP.

    Raw keys never reach the limiter storage.
    """
    api_key = request.headers.get("X-API-KEY")
    if api_key:
        return "key:" + hashlib.sha256(api_key.encode()).hexdigest()[:16]
    return "ip:" + get_remote_address(request)


def create_limiter() -> Limiter:
    settings = get_settings()
    enabled = settings.rate_limit_enabled
    return Limiter(
        key_func=rate_limit_key,
        default_limits=[settings.rate_limit_default],
        storage_uri=str(settings.redis_url) if enabled else "memory://",
        enabled=enabled,
    )


limiter = create_limiter()
