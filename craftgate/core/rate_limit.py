"""Image generation throttling for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Swap-friendly: the store sits behind ``AbstractRateLimiter``.
- One shared limiter per process, rebuilt only when its policy changes.

Identity: the authenticated user id when the frontend forwards one,
otherwise the client IP taken from ``X-Forwarded-For`` / ``Client-IP``.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Annotated

from fastapi import Depends, Request

from craftgate.adapters.rate_limit.base import RateLimitResult
from craftgate.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from craftgate.core.auth import get_user_id
from craftgate.core.config import settings
from craftgate.core.errors import RateLimitAppError
from craftgate.services.image_rate_limit import ImageGenerationRateLimiter, derive_key

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT_IP = "unknown"

_image_limiter: ImageGenerationRateLimiter | None = None
_image_limiter_config: tuple[int, int] | None = None


def get_image_rate_limiter() -> ImageGenerationRateLimiter:
    """Return the process-wide image generation limiter.

    The instance is cached in-module so counts survive across requests. If
    the configured policy changes (primarily in tests), it is rebuilt with an
    empty store.
    """

    global _image_limiter, _image_limiter_config

    config = (
        settings.app.image_generation_limit,
        settings.app.image_generation_window_seconds,
    )

    if _image_limiter is None or _image_limiter_config != config:
        limit, window_seconds = config
        _image_limiter = ImageGenerationRateLimiter(
            InMemoryFixedWindowRateLimiter(default_window_seconds=window_seconds),
            limit=limit,
            window_seconds=window_seconds,
        )
        _image_limiter_config = config

    return _image_limiter


def get_client_ip(request: Request) -> str:
    """Resolve the caller's address from proxy headers.

    Order: first hop of ``X-Forwarded-For``, then ``Client-IP``, then the
    socket peer, then ``"unknown"``.
    """

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    client_ip = request.headers.get("client-ip")
    if client_ip and client_ip.strip():
        return client_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT_IP


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing identities."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def check_image_generation_rate_limit(user_id: str | None, client_ip: str) -> RateLimitResult:
    """Consume one image generation attempt for the caller and log the outcome."""

    limiter = get_image_rate_limiter()
    result = limiter.check(user_id, client_ip)

    log_extra = {
        "key_type": "user" if user_id else "ip",
        "key_hash": _hash_limiter_key(derive_key(user_id, client_ip)),
        "limit": result.limit,
        "remaining": result.remaining,
        "window_s": limiter.window_seconds,
    }
    if result.allowed:
        logger.info("rate_limit.allowed", extra=log_extra)
    else:
        logger.warning("rate_limit.exceeded", extra=log_extra)
    return result


async def enforce_image_generation_rate_limit(
    request: Request,
    user_id: Annotated[str | None, Depends(get_user_id)] = None,
) -> RateLimitResult:
    """FastAPI dependency gating image generation.

    Consumes one unit of the caller's quota. When throttling is disabled the
    quota is reported untouched and nothing is consumed.

    Raises:
        RateLimitAppError: When the caller's quota for the window is used up.
    """

    client_ip = get_client_ip(request)
    if not settings.app.rate_limit_enabled:
        return get_image_rate_limiter().peek(user_id, client_ip)

    result = check_image_generation_rate_limit(user_id, client_ip)
    if result.allowed:
        return result

    retry_after = result.retry_after_seconds(get_image_rate_limiter().limiter.now_ms())

    raise RateLimitAppError(
        code="rate_limit_exceeded",
        message=f"Too many image generation requests. Try again in {retry_after} seconds.",
        details={
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_time": result.reset_time,
            "retry_after": retry_after,
        },
    )


async def image_rate_limit_status(
    request: Request,
    user_id: Annotated[str | None, Depends(get_user_id)] = None,
) -> RateLimitResult:
    """FastAPI dependency reporting the caller's quota without consuming it."""

    return get_image_rate_limiter().peek(user_id, get_client_ip(request))
