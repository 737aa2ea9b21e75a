"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Expiry is lazy: a stale window is replaced the next time its key is
  checked, or dropped by an explicit ``purge_expired()`` sweep.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from craftgate.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

logger = logging.getLogger(__name__)


@dataclass
class _WindowState:
    count: int
    reset_at: int


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting attempts per key inside a fixed time window.

    A window starts on the first attempt seen for a key and lasts
    ``window_seconds``; once it has elapsed the next attempt opens a new one
    with a zero count. Quota and window are supplied per call so one instance
    can serve several policies.

    Important:
        This limiter is per-process only. If the API runs with multiple
        workers, each worker enforces its own independent limits.
    """

    def __init__(
        self,
        *,
        default_window_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            default_window_seconds: Window assumed by ``reset_at`` for keys
                that have never been seen.
            clock: Time source function returning UNIX time in seconds.
        """
        self._default_window_seconds = default_window_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)

    def now_ms(self) -> int:
        """Current clock reading in epoch milliseconds."""
        return int(self._clock() * 1000)

    def _active_state(self, key: str, now_ms: int) -> _WindowState | None:
        state = self._state_by_key.get(key)
        if state is None or now_ms >= state.reset_at:
            return None
        return state

    def check(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Check the window for ``key`` and count the attempt if it fits.

        Rejected attempts are not counted, so ``remaining`` stays accurate
        and repeated rejections leave the window untouched. The clock is read
        once and the whole decision happens under one lock hold.

        Args:
            key: Identity key.
            limit: Maximum attempts per window (``<= 0`` always rejects).
            window_seconds: Length of a freshly opened window.

        Returns:
            RateLimitResult with the decision and the window snapshot.
        """
        now_ms = self.now_ms()

        with self._lock:
            state = self._active_state(key, now_ms)
            if state is None:
                state = _WindowState(count=0, reset_at=now_ms + window_seconds * 1000)
                self._state_by_key[key] = state

            allowed = state.count < limit
            if allowed:
                state.count += 1

            return RateLimitResult(
                allowed=allowed,
                limit=limit,
                remaining=max(0, limit - state.count),
                reset_time=state.reset_at,
            )

    def is_allowed(self, key: str, limit: int, window_seconds: int) -> bool:
        """Count one attempt for ``key``; True if it fit in the window."""
        return self.check(key, limit, window_seconds).allowed

    def remaining(self, key: str, limit: int) -> int:
        """Return how many attempts ``key`` has left in its current window.

        Absent or expired windows report the full ``limit``. Never rolls the
        window over.
        """
        now_ms = self.now_ms()

        with self._lock:
            state = self._active_state(key, now_ms)
            if state is None:
                return limit
            return max(0, limit - state.count)

    def reset_at(self, key: str) -> int:
        """Return epoch milliseconds when the window for ``key`` ends.

        For a key that was never seen, the end of a hypothetical window of
        ``default_window_seconds`` starting now is returned. A stale window
        still reports its own (past) end until the key is checked again.
        """
        with self._lock:
            state = self._state_by_key.get(key)
            if state is not None:
                return state.reset_at

        return self.now_ms() + self._default_window_seconds * 1000

    def reset_key(self, key: str) -> None:
        with self._lock:
            self._state_by_key.pop(key, None)

    def clear_all(self) -> None:
        with self._lock:
            self._state_by_key.clear()

    def purge_expired(self) -> int:
        """Drop every window that has already ended.

        Returns:
            Number of keys removed.
        """
        now_ms = self.now_ms()

        with self._lock:
            expired_keys = [
                key for key, state in self._state_by_key.items() if now_ms >= state.reset_at
            ]
            for key in expired_keys:
                del self._state_by_key[key]

        if expired_keys:
            logger.debug(
                "rate_limit.purged",
                extra={"purged": len(expired_keys), "tracked": len(self)},
            )
        return len(expired_keys)
