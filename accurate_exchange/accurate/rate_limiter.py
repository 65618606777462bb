"""
Per-credential request limiter.

Each limiter enforces two ceilings at once:

1. at most ``max_concurrent`` requests in flight, and
2. at most ``requests_per_window`` request starts within any sliding
   ``window_seconds`` interval.

Waiters are admitted strictly in arrival order. Limiters are created lazily
in a lock-guarded registry, one per credential key, so credentials never
throttle each other.
"""

import itertools
import threading
import time
from collections import deque
from contextlib import contextmanager
from typing import Callable, Deque, Dict, Iterator, Optional

from ..config import DispatcherConfig
from ..utils.logger import get_logger


class RateLimiter:
    """FIFO sliding-window plus concurrency limiter for one credential."""

    def __init__(
        self,
        requests_per_window: int,
        max_concurrent: int,
        window_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if requests_per_window <= 0 or max_concurrent <= 0 or window_seconds <= 0:
            raise ValueError("Limiter ceilings and window must be positive")

        self.requests_per_window = requests_per_window
        self.max_concurrent = max_concurrent
        self.window_seconds = window_seconds
        self._clock = clock

        self._condition = threading.Condition()
        self._tickets = itertools.count()
        self._queue: Deque[int] = deque()
        self._starts: Deque[float] = deque()
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        with self._condition:
            return self._in_flight

    @property
    def waiting(self) -> int:
        with self._condition:
            return len(self._queue)

    def _expire(self, now: float) -> None:
        while self._starts and now - self._starts[0] >= self.window_seconds:
            self._starts.popleft()

    def _wait_time(self, now: float) -> Optional[float]:
        """None when a slot is free now; otherwise how long to wait (0 means until notified)."""
        if self._in_flight >= self.max_concurrent:
            return 0
        if len(self._starts) >= self.requests_per_window:
            return max(self._starts[0] + self.window_seconds - now, 0.001)
        return None

    def acquire(self) -> None:
        """Block until this caller may start a request."""
        with self._condition:
            ticket = next(self._tickets)
            self._queue.append(ticket)
            try:
                while True:
                    now = self._clock()
                    self._expire(now)
                    if self._queue[0] == ticket:
                        wait = self._wait_time(now)
                        if wait is None:
                            break
                        self._condition.wait(timeout=wait or None)
                    else:
                        self._condition.wait()
                self._queue.popleft()
                self._in_flight += 1
                self._starts.append(now)
            except BaseException:
                if ticket in self._queue:
                    self._queue.remove(ticket)
                raise
            finally:
                self._condition.notify_all()

    def release(self) -> None:
        with self._condition:
            if self._in_flight <= 0:
                raise RuntimeError("release() called without a matching acquire()")
            self._in_flight -= 1
            self._condition.notify_all()

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold one in-flight slot for the duration of the block."""
        self.acquire()
        try:
            yield
        finally:
            self.release()


class LimiterRegistry:
    """Lazily creates and caches one RateLimiter per credential key."""

    def __init__(self, config: DispatcherConfig):
        self.config = config
        self._lock = threading.Lock()
        self._limiters: Dict[str, RateLimiter] = {}

    def get(self, key: str) -> RateLimiter:
        with self._lock:
            limiter = self._limiters.get(key)
            if limiter is None:
                limiter = RateLimiter(
                    requests_per_window=self.config.requests_per_second,
                    max_concurrent=self.config.max_concurrent,
                    window_seconds=self.config.window_seconds,
                )
                self._limiters[key] = limiter
                get_logger().debug(
                    "Created rate limiter",
                    extra={
                        "limiter_key": key,
                        "requests_per_window": limiter.requests_per_window,
                        "max_concurrent": limiter.max_concurrent,
                    },
                )
            return limiter

    def discard(self, key: str) -> None:
        with self._lock:
            self._limiters.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._limiters)
