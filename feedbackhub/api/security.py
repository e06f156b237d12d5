"""
Security dependencies for the API: token check, tenant header, rate limits.
"""

import time
import logging
from collections import defaultdict
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from feedbackhub.config import settings
from feedbackhub.utils.logging_config import user_id_var

logger = logging.getLogger(__name__)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def verify_api_token(
    request: Request,
    api_key: Optional[str] = Header(None, alias=settings.api_token_header),
):
    """
    Verify the API token header.

    With no token configured (dev mode) every request passes.
    """
    if not settings.api_token:
        if settings.is_production:
            logger.warning("API token not configured in production mode!")
        return None

    if not api_key:
        logger.warning(f"Missing API key from {_client_ip(request)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing API key. Provide {settings.api_token_header} header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if api_key != settings.api_token:
        logger.warning(f"Invalid API key attempt from {_client_ip(request)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return api_key


async def get_current_user_id(
    user_id: Optional[str] = Header(None, alias=settings.user_id_header),
) -> str:
    """Tenant id forwarded by the auth layer in front of the API."""
    if not user_id or not user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {settings.user_id_header} header.",
        )
    user_id = user_id.strip()
    user_id_var.set(user_id)
    return user_id


class RateLimiter:
    """
    Sliding-window rate limiter kept in process memory.
    For several workers, use Redis or a proper rate limiting service.
    """

    def __init__(self):
        self._requests: dict = defaultdict(list)

    def _clean_old_requests(self, key: str, window: int):
        now = time.time()
        self._requests[key] = [
            ts for ts in self._requests[key]
            if now - ts < window
        ]

    def is_allowed(self, key: str, limit: int, window: int) -> tuple[bool, int]:
        """
        Record a request for `key` if it fits in the window.

        Returns:
            (allowed: bool, remaining: int)
        """
        self._clean_old_requests(key, window)

        current_count = len(self._requests[key])

        if current_count >= limit:
            return False, 0

        self._requests[key].append(time.time())
        return True, limit - current_count - 1

    def get_retry_after(self, key: str, window: int) -> int:
        """Seconds until the oldest request leaves the window."""
        if not self._requests[key]:
            return 0
        oldest = min(self._requests[key])
        return max(0, int(window - (time.time() - oldest)))

    def reset(self):
        self._requests.clear()


rate_limiter = RateLimiter()


def _enforce(request: Request, key: str, limit: int, window: int) -> None:
    allowed, remaining = rate_limiter.is_allowed(key=key, limit=limit, window=window)

    # Picked up by the rate limit headers middleware
    request.state.rate_limit_remaining = remaining
    request.state.rate_limit_limit = limit

    if not allowed:
        retry_after = rate_limiter.get_retry_after(key, window)
        logger.warning(f"Rate limit exceeded for {key}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
            },
        )


async def check_rate_limit(request: Request):
    """Global per-IP limit for dashboard and admin routes."""
    if not settings.rate_limit_requests:
        return
    _enforce(
        request,
        key=f"api:{_client_ip(request)}",
        limit=settings.rate_limit_requests,
        window=settings.rate_limit_window,
    )


def check_widget_rate_limit(request: Request, project_id: int) -> None:
    """
    Widget submissions are public, so they get tighter limits:
    one per client IP and one per project and IP.
    """
    client_ip = _client_ip(request)
    if settings.widget_rate_limit_requests:
        _enforce(
            request,
            key=f"widget:{client_ip}",
            limit=settings.widget_rate_limit_requests,
            window=settings.rate_limit_window,
        )
    if settings.project_rate_limit_requests:
        _enforce(
            request,
            key=f"project:{project_id}:{client_ip}",
            limit=settings.project_rate_limit_requests,
            window=settings.rate_limit_window,
        )
