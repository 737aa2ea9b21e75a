"""Rate limiting adapters.

This package keeps the limiter behind a small abstraction so the in-memory
store can later be swapped for Redis or another shared store without
changing the image generation policy or the API layer.
"""

from craftgate.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from craftgate.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitResult",
]
