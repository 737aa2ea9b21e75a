"""Rate limiter interfaces.

Request handlers depend on this abstraction rather than on the in-memory
implementation, so a shared store (e.g., Redis) can replace it later without
touching the HTTP layer.
"""

from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check for one identity.

    Attributes:
        allowed: Whether the action may proceed.
        limit: Quota per window that was applied.
        remaining: Actions left in the current window (0 when exhausted).
        reset_time: Epoch milliseconds when the current window ends.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_time: int

    def retry_after_seconds(self, now_ms: int) -> int:
        """Whole seconds until the window resets, never negative."""
        return max(0, int(math.ceil((self.reset_time - now_ms) / 1000)))


class AbstractRateLimiter(ABC):
    """Interface for fixed-window rate limiters keyed by identity string."""

    def now_ms(self) -> int:
        """Current time in epoch milliseconds as seen by this limiter."""
        return int(time.time() * 1000)

    @abstractmethod
    def check(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Record one attempt for ``key`` and snapshot its window atomically.

        The decision, remaining count and reset time all come from a single
        clock reading, so the result never contradicts itself.

        Args:
            key: Identity key (e.g., ``user:<id>`` or ``ip:<address>``).
            limit: Maximum attempts per window.
            window_seconds: Window length in seconds.

        Returns:
            RateLimitResult describing the attempt.
        """
        raise NotImplementedError

    @abstractmethod
    def is_allowed(self, key: str, limit: int, window_seconds: int) -> bool:
        """Record one attempt for ``key`` unless its window is exhausted.

        Args:
            key: Identity key (e.g., ``user:<id>`` or ``ip:<address>``).
            limit: Maximum attempts per window.
            window_seconds: Window length in seconds.

        Returns:
            True when the attempt was counted, False when rejected.
        """
        raise NotImplementedError

    @abstractmethod
    def remaining(self, key: str, limit: int) -> int:
        """Return attempts left for ``key`` without mutating state."""
        raise NotImplementedError

    @abstractmethod
    def reset_at(self, key: str) -> int:
        """Return epoch milliseconds when the window for ``key`` ends."""
        raise NotImplementedError

    @abstractmethod
    def reset_key(self, key: str) -> None:
        """Forget the window for one key."""
        raise NotImplementedError

    @abstractmethod
    def clear_all(self) -> None:
        """Forget every tracked window."""
        raise NotImplementedError
