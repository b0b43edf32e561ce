"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit,
  and a restart silently resets every counter.
- Thread-safe: increments are serialized with a lock, so the limit is a hard
  cap within one process.
- Memory is bounded by the keys active within one window: expired records
  are swept every ``sweep_every`` calls, or sooner once ``max_records`` is
  reached.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable

from mobile_gateway.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitRecord,
    RateLimitResult,
)


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Fixed-window counter keyed by an opaque string.

    A key's window opens with its first request and lasts ``window_seconds``.
    Once the window has elapsed the next request starts a fresh window with
    a count of one. Records of keys that stop calling are dropped by
    ``prune``, which ``consume`` runs periodically.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_every: int = 1000,
        max_records: int = 10_000,
    ) -> None:
        """Initialize the limiter.

        Args:
            clock: Time source function returning UNIX time in seconds.
            sweep_every: Number of consume calls between two sweeps.
            max_records: Record count that triggers an early sweep.
        """
        if sweep_every < 1:
            raise ValueError("sweep_every must be >= 1")
        if max_records < 1:
            raise ValueError("max_records must be >= 1")
        self._clock = clock
        self._sweep_every = sweep_every
        self._max_records = max_records
        self._calls_since_sweep = 0
        self._lock = threading.RLock()
        self._records: dict[str, RateLimitRecord] = {}

    def get_record(self, key: str) -> RateLimitRecord | None:
        with self._lock:
            return self._records.get(key)

    def consume(
        self,
        key: str,
        *,
        limit: int,
        window_seconds: float,
        cost: int = 1,
    ) -> RateLimitResult:
        """Consume budget for the provided key.

        Args:
            key: Unique identifier for rate limiting.
            limit: Maximum units per window.
            window_seconds: Window length in seconds.
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If key is empty or limit/window/cost are invalid.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if cost < 1:
            raise ValueError("cost must be >= 1")

        now = self._clock()

        with self._lock:
            self._calls_since_sweep += 1
            if self._calls_since_sweep >= self._sweep_every or len(self._records) >= self._max_records:
                self._sweep(now)

            record = self._records.get(key)
            if record is None or record.expired(now):
                if cost > limit:
                    return self._blocked(limit, 0, now, now + window_seconds)
                record = RateLimitRecord(
                    key=key,
                    count=cost,
                    window_start=now,
                    window_seconds=window_seconds,
                )
                self._records[key] = record
                return self._allowed(limit, record)

            reset_at = record.window_start + record.window_seconds
            if record.count + cost > limit:
                return self._blocked(limit, limit - record.count, now, reset_at)

            record.count += cost
            return self._allowed(limit, record)

    def prune(self) -> int:
        """Drop records whose own window has elapsed.

        Returns:
            Number of records removed.
        """
        with self._lock:
            return self._sweep(self._clock())

    def _sweep(self, now: float) -> int:
        stale = [k for k, r in self._records.items() if r.expired(now)]
        for key in stale:
            del self._records[key]
        self._calls_since_sweep = 0
        return len(stale)

    @staticmethod
    def _allowed(limit: int, record: RateLimitRecord) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limit=limit,
            remaining=max(0, limit - record.count),
            reset_at=int(math.ceil(record.window_start + record.window_seconds)),
            retry_after_seconds=None,
        )

    @staticmethod
    def _blocked(limit: int, remaining: int, now: float, reset_at: float) -> RateLimitResult:
        return RateLimitResult(
            allowed=False,
            limit=limit,
            remaining=max(0, remaining),
            reset_at=int(math.ceil(reset_at)),
            retry_after_seconds=max(1, int(math.ceil(reset_at - now))),
        )
