"""Rate limiter interfaces.

The HTTP layer depends on this abstraction only, so the in-process store can
be replaced by a shared counter store (e.g. Redis) when the gateway runs as
more than one instance.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class RateLimitRecord:
    """Request counter for one key within its current window.

    Attributes:
        key: Opaque limiter key (route scope + client id).
        count: Requests counted in the current window; never above the limit.
        window_start: UNIX time in seconds at which the window opened.
        window_seconds: Length of the window the record was opened with.
    """

    key: str
    count: int
    window_start: float
    window_seconds: float

    def expired(self, now: float) -> bool:
        return now - self.window_start >= self.window_seconds


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for fixed-window rate limiters."""

    @abstractmethod
    def consume(
        self,
        key: str,
        *,
        limit: int,
        window_seconds: float,
        cost: int = 1,
    ) -> RateLimitResult:
        """Consume budget for ``key`` under the given policy.

        Args:
            key: Unique identifier (route scope + client id).
            limit: Maximum units allowed per window.
            window_seconds: Window length in seconds.
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError
