"""Fixed-window request counting per client key.

Each client key owns a :class:`RateLimitRecord` holding the number of
requests admitted in the current window and the time the window opened.
The window restarts the first time a request arrives at least
``window_seconds`` after it opened; there is no carry-over between windows.

The counter table is the only shared mutable state in the admission path.
All reads and writes go through a single lock so that increment-and-compare
stays atomic whether requests are served from one event loop or from a
thread pool. The table is bounded: once ``max_tracked_keys`` is reached,
expired records are swept and, if that frees nothing, the least recently
seen key is dropped. The earliest possible expiry is tracked so a full table
of live clients is not rescanned on every new key.
"""

import math
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from src.core.exceptions import ConfigurationError


@dataclass(slots=True)
class RateLimitRecord:
    """Counter state for one client key."""

    count: int
    window_start: float


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of one admission check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Maximum requests per window.
        remaining: Requests left in the current window after this one.
        reset_at: Clock time at which the current window ends.
        now: Clock time the decision was taken at.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    now: float

    @property
    def reset_after(self) -> float:
        """Seconds until the window resets, never negative."""
        return max(0.0, self.reset_at - self.now)


class FixedWindowRateLimiter:
    """In-memory fixed-window rate limiter.

    Args:
        max_requests: Requests admitted per key inside one window.
        window_seconds: Window length in seconds.
        max_tracked_keys: Upper bound on the number of keys kept in memory.
        clock: Time source returning seconds; defaults to ``time.time``.

    Raises:
        ConfigurationError: If any limit is not positive.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        max_tracked_keys: int = 100_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_requests < 1 or window_seconds <= 0 or max_tracked_keys < 1:
            raise ConfigurationError(
                "Rate limiter limits must be positive",
                context={
                    "max_requests": max_requests,
                    "window_seconds": window_seconds,
                    "max_tracked_keys": max_tracked_keys,
                },
            )
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_tracked_keys = max_tracked_keys
        self._clock = clock
        self._records: OrderedDict[str, RateLimitRecord] = OrderedDict()
        self._next_expiry = math.inf
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def admit(self, client_key: str, now: float | None = None) -> RateLimitDecision:
        """Count one request for ``client_key`` and decide whether to admit it.

        Args:
            client_key: Identity of the caller, usually its network address.
            now: Current time in seconds. Read from the clock when omitted.

        Returns:
            RateLimitDecision: The admission outcome and header values.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            record = self._records.get(client_key)
            if record is None:
                self._make_room(now)
                record = RateLimitRecord(count=0, window_start=now)
                self._records[client_key] = record
                self._next_expiry = min(self._next_expiry, now + self.window_seconds)
            else:
                self._records.move_to_end(client_key)
                if now - record.window_start >= self.window_seconds:
                    record.count = 0
                    record.window_start = now

            allowed = record.count < self.max_requests
            if allowed:
                record.count += 1

            return RateLimitDecision(
                allowed=allowed,
                limit=self.max_requests,
                remaining=max(0, self.max_requests - record.count),
                reset_at=record.window_start + self.window_seconds,
                now=now,
            )

    def get(self, client_key: str) -> RateLimitRecord | None:
        """Return a copy of the record for ``client_key`` if it is tracked."""
        with self._lock:
            record = self._records.get(client_key)
            if record is None:
                return None
            return RateLimitRecord(count=record.count, window_start=record.window_start)

    def reset_key(self, client_key: str) -> None:
        """Forget the counter for one client."""
        with self._lock:
            self._records.pop(client_key, None)

    def reset(self) -> None:
        """Forget every counter."""
        with self._lock:
            self._records.clear()
            self._next_expiry = math.inf

    def sweep(self, now: float | None = None) -> int:
        """Drop records whose window has ended.

        Returns:
            int: Number of records removed.
        """
        if now is None:
            now = self._clock()
        with self._lock:
            return self._sweep_expired(now)

    def _sweep_expired(self, now: float) -> int:
        expired = []
        oldest_live_start = math.inf
        for key, record in self._records.items():
            if now - record.window_start >= self.window_seconds:
                expired.append(key)
            else:
                oldest_live_start = min(oldest_live_start, record.window_start)
        for key in expired:
            del self._records[key]
        # Window starts only move forward, so nothing expires before this.
        self._next_expiry = oldest_live_start + self.window_seconds
        return len(expired)

    def _make_room(self, now: float) -> None:
        # Caller holds the lock.
        if len(self._records) < self.max_tracked_keys:
            return

        if now >= self._next_expiry:
            removed = self._sweep_expired(now)
            if removed:
                logger.debug("Swept {} expired rate limit records", removed)
                return

        evicted_key, _ = self._records.popitem(last=False)
        logger.debug(
            "Rate limit table full, evicted least recent client",
            evicted_key=evicted_key,
            max_tracked_keys=self.max_tracked_keys,
        )
