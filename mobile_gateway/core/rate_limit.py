"""Rate limiting for gateway routes.

Wires the limiter adapter into the HTTP layer:

- ``check_rate_limit`` is the plain key/limit/window check.
- ``with_rate_limit`` gates an async request handler with a per-route policy
  and answers 429 envelopes when the caller is over budget.

Keys are ``"{scope}:{client_id}"`` where the client id comes from
``X-Forwarded-For``/``X-Real-IP`` or the socket peer. The limiter fails open:
if it raises, the request is let through and the failure is logged.
"""

from __future__ import annotations

import functools
import hashlib
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Request, Response

from mobile_gateway.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from mobile_gateway.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from mobile_gateway.core.config import settings
from mobile_gateway.core.envelope import build_envelope

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]

TOO_MANY_REQUESTS_MESSAGE = "Too many requests"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Requests allowed per window for one route.

    Attributes:
        limit: Maximum requests per window.
        window_seconds: Window length in seconds.
        id_from_request: Optional callable returning a stable caller id
            (e.g. a user id); defaults to the client IP.
    """

    limit: int
    window_seconds: int
    id_from_request: Callable[[Request], str | None] | None = None


_limiter: AbstractRateLimiter | None = None


def get_rate_limiter() -> AbstractRateLimiter:
    """Return the process-wide limiter, creating it on first use."""

    global _limiter
    if _limiter is None:
        _limiter = InMemoryFixedWindowRateLimiter()
    return _limiter


def set_rate_limiter(limiter: AbstractRateLimiter | None) -> None:
    """Replace the process-wide limiter (None restores the default)."""

    global _limiter
    _limiter = limiter


def get_client_ip(request: Request) -> str:
    """Best-effort caller address, honouring proxy headers."""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client ids."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def consume_or_allow(key: str, limit: int, window_seconds: float) -> RateLimitResult:
    """Consume one unit for ``key``; on limiter failure allow the request.

    Returns:
        The limiter's result, or a synthetic "allowed" result when the
        limiter raised.
    """

    try:
        return get_rate_limiter().consume(key, limit=limit, window_seconds=window_seconds)
    except Exception as exc:
        logger.error(
            "rate_limit.backend_error",
            extra={
                "key_hash": _hash_limiter_key(key),
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return RateLimitResult(
            allowed=True,
            limit=limit,
            remaining=limit,
            reset_at=0,
            retry_after_seconds=None,
        )


def check_rate_limit(key: str, limit: int, window_ms: int) -> bool:
    """Count one request for ``key`` and report whether to reject it.

    Args:
        key: Opaque limiter key.
        limit: Maximum requests per window.
        window_ms: Window length in milliseconds.

    Returns:
        True when the request should be rejected.
    """

    return not consume_or_allow(key, limit, window_ms / 1000).allowed


def _rate_limit_headers(result: RateLimitResult, *, blocked: bool) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": "0" if blocked else str(result.remaining),
    }
    if blocked:
        headers["Retry-After"] = str(result.retry_after_seconds or 0)
        headers["X-RateLimit-Reset"] = str(result.reset_at)
    return headers


def with_rate_limit(handler: Handler, policy: RateLimitPolicy, *, scope: str = "api") -> Handler:
    """Wrap ``handler`` so it only runs while the caller is within budget.

    Args:
        handler: Async callable taking the request and returning a response.
        policy: Limit and window for this route.
        scope: Key namespace, normally the route name.

    Returns:
        Async handler answering 429 envelopes for callers over the limit.
    """

    @functools.wraps(handler)
    async def wrapped(request: Request) -> Response:
        if not settings.app.rate_limit_enabled:
            return await handler(request)

        client_id = None
        if policy.id_from_request is not None:
            client_id = policy.id_from_request(request)
        key = f"{scope}:{client_id or get_client_ip(request)}"

        result = consume_or_allow(key, policy.limit, policy.window_seconds)
        if not result.allowed:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "scope": scope,
                    "key_hash": _hash_limiter_key(key),
                    "limit": result.limit,
                    "window_s": policy.window_seconds,
                    "retry_after_s": result.retry_after_seconds,
                },
            )
            headers = None
            if settings.app.rate_limit_include_headers:
                headers = _rate_limit_headers(result, blocked=True)
            return build_envelope(429, error=TOO_MANY_REQUESTS_MESSAGE, headers=headers)

        response = await handler(request)
        if settings.app.rate_limit_include_headers:
            response.headers.update(_rate_limit_headers(result, blocked=False))
        return response

    return wrapped
