"""Throttling policy for AI furniture image generation.

Image generation is the most expensive operation the marketplace offers, so
each caller gets a small fixed quota per short window. Authenticated callers
are keyed by user id; anonymous callers fall back to their client IP, which
is shared behind NAT and proxies and therefore only a secondary signal.
"""

from __future__ import annotations

from craftgate.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

IMAGE_GENERATION_LIMIT = 5
IMAGE_GENERATION_WINDOW_SECONDS = 300


def derive_key(user_id: str | None, client_ip: str) -> str:
    """Build the namespaced limiter key for a caller.

    Args:
        user_id: Authenticated user id, if any.
        client_ip: Client address (or the ``"unknown"`` sentinel).

    Returns:
        ``"user:<id>"`` for authenticated callers, otherwise ``"ip:<address>"``.

    Examples:
        >>> derive_key("user-42", "1.2.3.4")
        'user:user-42'
        >>> derive_key(None, "1.2.3.4")
        'ip:1.2.3.4'
    """

    if user_id:
        return f"user:{user_id}"
    return f"ip:{client_ip}"


class ImageGenerationRateLimiter:
    """Applies the image generation quota on top of a generic limiter.

    This is the entry point request handlers call; the limiter primitives are
    kept separate so they can be composed and tested on their own.
    """

    def __init__(
        self,
        limiter: AbstractRateLimiter,
        *,
        limit: int = IMAGE_GENERATION_LIMIT,
        window_seconds: int = IMAGE_GENERATION_WINDOW_SECONDS,
    ) -> None:
        self.limiter = limiter
        self.limit = limit
        self.window_seconds = window_seconds

    def check(self, user_id: str | None, client_ip: str) -> RateLimitResult:
        """Consume one image generation attempt for the caller.

        Args:
            user_id: Authenticated user id, if any.
            client_ip: Client address.

        Returns:
            RateLimitResult with the decision, remaining quota and reset time.
        """

        return self.limiter.check(
            derive_key(user_id, client_ip), self.limit, self.window_seconds
        )

    def peek(self, user_id: str | None, client_ip: str) -> RateLimitResult:
        """Report the caller's quota without consuming any of it."""

        key = derive_key(user_id, client_ip)
        remaining = self.limiter.remaining(key, self.limit)
        return RateLimitResult(
            allowed=remaining > 0,
            limit=self.limit,
            remaining=remaining,
            reset_time=self.limiter.reset_at(key),
        )
