"""Sliding-window admission control for the processing endpoint."""

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from .constants import RATE_LIMIT_DEFAULTS

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Admit at most ``max_requests`` per caller within a trailing window.

    State is process-local. Running several replicas requires a shared
    counter store instead.
    """

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_DEFAULTS["max_requests"],
        window_seconds: float = RATE_LIMIT_DEFAULTS["window_seconds"],
        clock: Optional[Callable[[], float]] = None,
        max_tracked_keys: int = RATE_LIMIT_DEFAULTS["max_tracked_keys"],
    ):
        """Initialize the limiter.

        Args:
            max_requests: Requests admitted per window for one caller
            window_seconds: Length of the trailing window
            clock: Monotonic time source, injectable for tests
            max_tracked_keys: Purge expired callers once this many are tracked
        """
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("Rate limit requires positive max_requests and window_seconds")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_tracked_keys = max_tracked_keys
        self._clock = clock or time.monotonic
        self._requests: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def allow(self, caller_key: str) -> bool:
        """Admit or reject one request from ``caller_key``.

        Only admitted requests are recorded.
        """
        now = self._clock()
        with self._lock:
            if len(self._requests) > self.max_tracked_keys:
                self._purge(now)

            timestamps = self._requests.setdefault(caller_key, deque())
            self._evict(timestamps, now)

            if len(timestamps) >= self.max_requests:
                logger.warning(f"Rate limit exceeded for caller {caller_key}")
                return False

            timestamps.append(now)
            return True

    def remaining(self, caller_key: str) -> int:
        """Requests still admissible for ``caller_key`` in the current window."""
        now = self._clock()
        with self._lock:
            timestamps = self._requests.get(caller_key)
            if not timestamps:
                return self.max_requests
            self._evict(timestamps, now)
            return max(0, self.max_requests - len(timestamps))

    def retry_after(self, caller_key: str) -> float:
        """Seconds until ``caller_key`` regains at least one admission."""
        now = self._clock()
        with self._lock:
            timestamps = self._requests.get(caller_key)
            if not timestamps:
                return 0.0
            self._evict(timestamps, now)
            if len(timestamps) < self.max_requests:
                return 0.0
            return max(0.0, timestamps[0] + self.window_seconds - now)

    def reset(self, caller_key: Optional[str] = None):
        """Forget recorded requests for one caller, or for everyone."""
        with self._lock:
            if caller_key is None:
                self._requests.clear()
            else:
                self._requests.pop(caller_key, None)

    def _evict(self, timestamps: Deque[float], now: float):
        cutoff = now - self.window_seconds
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

    def _purge(self, now: float):
        for key in list(self._requests):
            timestamps = self._requests[key]
            self._evict(timestamps, now)
            if not timestamps:
                del self._requests[key]
