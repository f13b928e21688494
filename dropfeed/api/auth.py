"""
API authentication using X-API-KEY header.
"""

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from dropfeed.config.settings import get_settings

api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)


def is_valid_api_key(api_key: str | None) -> bool:
    """True for a configured key, or for anything in dev mode (no keys set)."""
    valid_keys = get_settings().api_key_list
    if not valid_keys:
        return True
    return api_key is not None and api_key in valid_keys


async def verify_api_key(api_key: str | None = Security(api_key_header)) -> str:
    """
    Verify API key from X-API-KEY header.

    Returns:
        The validated API key, or ``"dev-mode"`` when no keys are configured

    Raises:
        HTTPException: If API key is missing or invalid
    """
    if not get_settings().api_key_list:
        return "dev-mode"

    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-KEY header.",
        )
    if not is_valid_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
    return api_key
