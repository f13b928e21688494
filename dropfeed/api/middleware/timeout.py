"""
Request timeout middleware.

Returns 504 when a request outlives ``timeout_seconds``. Health checks
and the status WebSocket are exempt.
"""

import asyncio

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

_EXEMPT_PREFIXES = ("/health", "/ws/")


class TimeoutMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, timeout_seconds: float = 30.0):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    def _is_exempt(self, request: Request) -> bool:
        if request.headers.get("upgrade", "").lower() == "websocket":
            return True
        return request.url.path.startswith(_EXEMPT_PREFIXES)

    async def dispatch(self, request: Request, call_next):
        if self._is_exempt(request):
            return await call_next(request)

        try:
            return await asyncio.wait_for(call_next(request), self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Request timed out",
                method=request.method,
                path=request.url.path,
                timeout_seconds=self.timeout_seconds,
            )
            return JSONResponse(
                status_code=504,
                content={
                    "detail": "Request timed out",
                    "error_type": "timeout",
                    "timeout_seconds": self.timeout_seconds,
                },
            )
