# Per-source moving-window rate limiting backed by the `limits` in-memory storage
import math
import time

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter


class SlidingWindowRateLimiter:
    """At most ``max_hits`` attempts per key within the trailing ``window_seconds``.

    Each instance owns its own storage; expired entries are dropped by the
    storage itself.
    """

    def __init__(self, max_hits: int, window_seconds: int):
        self.item = RateLimitItemPerSecond(max_hits, window_seconds)
        self._strategy = MovingWindowRateLimiter(MemoryStorage())

    def hit(self, key: str) -> tuple[bool, int]:
        """Record an attempt for ``key``.

        Returns:
            tuple[bool, int]: (allowed, retry_after_seconds). A rejected
            attempt is not recorded.
        """
        if self._strategy.hit(self.item, key):
            return True, 0
        stats = self._strategy.get_window_stats(self.item, key)
        return False, max(math.ceil(stats.reset_time - time.time()), 1)
