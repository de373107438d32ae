"""
RateLimiter module enforcing a minimum interval between outbound requests
"""

import threading
import time
from typing import Callable, Optional


class RateLimiter:
    """
    Process-wide throttle shared by every gateway talking to one upstream account

    Each caller reserves the next start slot under a lock, then sleeps until
    that slot outside the lock. Slots are handed out in arrival order and are
    never closer than min_interval apart, so callers are released FIFO.
    """

    def __init__(self, min_interval: float,
                 clock: Callable[[], float] = time.monotonic,
                 sleeper: Callable[[float], None] = time.sleep):
        if min_interval < 0:
            raise ValueError("min_interval must not be negative")
        self.min_interval = min_interval
        self._clock = clock
        self._sleeper = sleeper
        self._lock = threading.Lock()
        self._last_slot: Optional[float] = None

    @classmethod
    def from_requests_per_second(cls, requests_per_second: float, **kwargs) -> 'RateLimiter':
        """Build a limiter from the upstream's documented requests-per-second quota"""
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        return cls(1.0 / requests_per_second, **kwargs)

    def reserve(self) -> float:
        """
        Reserve the next start slot without waiting for it

        Returns:
            Clock time at which the caller may start its request
        """
        with self._lock:
            now = self._clock()
            if self._last_slot is None:
                slot = now
            else:
                slot = max(now, self._last_slot + self.min_interval)
            self._last_slot = slot
            return slot

    def acquire(self) -> float:
        """
        Block until the caller's slot is reached

        Returns:
            Seconds spent waiting
        """
        slot = self.reserve()
        delay = slot - self._clock()
        if delay > 0:
            self._sleeper(delay)
            return delay
        return 0.0

    @property
    def last_request_time(self) -> Optional[float]:
        """Start time of the most recently reserved slot"""
        with self._lock:
            return self._last_slot
