"""In-memory rate limiter.

One fixed one-minute window per key, held in process memory. Counters are
not shared between workers or processes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


class RateLimitExceeded(Exception):
    """Raised when a key exceeds its per-minute request budget."""

    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Rate limit exceeded, retry after {retry_after}s")
        self.retry_after = retry_after


class InMemoryRateLimiter:
    """Fixed-window counter keyed by an arbitrary string.

    All access happens on the event loop thread, so no lock is taken.
    """

    def __init__(
        self,
        limit_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit_per_minute
        self._clock = clock
        self._windows: dict[str, tuple[int, int]] = {}

    def hit(self, key: str) -> None:
        """Count one request for ``key`` or raise ``RateLimitExceeded``.

        A request refused with 429 does not consume budget.
        """
        if self.limit <= 0:
            return
        window = int(self._clock() // WINDOW_SECONDS)
        current_window, count = self._windows.get(key, (window, 0))
        if current_window != window:
            count = 0
        if count >= self.limit:
            raise RateLimitExceeded(retry_after=WINDOW_SECONDS)
        self._windows[key] = (window, count + 1)
        if len(self._windows) > 10_000:
            self._evict(window)

    def _evict(self, window: int) -> None:
        stale = [k for k, (w, _) in self._windows.items() if w != window]
        for key in stale:
            del self._windows[key]

    def reset(self) -> None:
        self._windows.clear()
