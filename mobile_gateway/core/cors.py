"""Per-route CORS negotiation.

Starlette's ``CORSMiddleware`` applies one policy to the whole app; the
gateway needs a policy per route (credentialed vs. public, route-specific
methods), so headers are computed here and attached to each response.

Origin policy:
- credentials off: echo an allowed ``Origin``, otherwise ``*``
- credentials on: echo an allowed ``Origin`` with
  ``Access-Control-Allow-Credentials: true``; never ``*``. A missing or
  unknown origin gets neither header.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from fastapi import Request, Response

from mobile_gateway.core.config import settings

DEFAULT_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS")

DEFAULT_HEADERS: tuple[str, ...] = (
    "Authorization",
    "Content-Type",
    "X-Requested-With",
    "X-Client-Version",
    "X-Request-ID",
)

DEFAULT_EXPOSE_HEADERS: tuple[str, ...] = (
    "X-Request-ID",
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
    "Retry-After",
)


@dataclass(frozen=True)
class CorsOptions:
    """CORS policy for one route.

    ``origins=None`` means "use the configured allow-list"; an empty
    sequence allows any origin.
    """

    credentials: bool = False
    origins: Sequence[str] | None = None
    methods: Sequence[str] = DEFAULT_METHODS
    headers: Sequence[str] = DEFAULT_HEADERS
    expose_headers: Sequence[str] = DEFAULT_EXPOSE_HEADERS
    max_age: int | None = None


def _origin_allowed(origin: str, allowed: Sequence[str]) -> bool:
    if not allowed or "*" in allowed:
        return True
    return origin in allowed


def _normalize_methods(methods: Sequence[str]) -> list[str]:
    resolved = [m.upper() for m in methods]
    if "OPTIONS" not in resolved:
        resolved.append("OPTIONS")
    return list(dict.fromkeys(resolved))


def _merge_vary(current: str | None, value: str) -> str:
    items = [v.strip() for v in (current or "").split(",") if v.strip()]
    if value.lower() not in {v.lower() for v in items}:
        items.append(value)
    return ", ".join(items)


def cors_headers(request: Request, options: CorsOptions) -> dict[str, str | None]:
    """Compute the CORS headers for ``request``.

    Values of None mean "this header must not be present".
    """

    allowed = settings.cors.origins() if options.origins is None else list(options.origins)
    origin = request.headers.get("origin")

    allow_origin: str | None
    allow_credentials: str | None = None
    if options.credentials:
        if origin and _origin_allowed(origin, allowed):
            allow_origin = origin
            allow_credentials = "true"
        else:
            allow_origin = None
    elif origin and _origin_allowed(origin, allowed):
        allow_origin = origin
    else:
        allow_origin = "*"

    max_age = settings.cors.max_age if options.max_age is None else options.max_age
    headers: dict[str, str | None] = {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Credentials": allow_credentials,
        "Access-Control-Allow-Methods": ", ".join(_normalize_methods(options.methods)),
        "Access-Control-Allow-Headers": ", ".join(options.headers),
        "Access-Control-Expose-Headers": ", ".join(options.expose_headers) or None,
        "Access-Control-Max-Age": str(max_age),
    }
    return headers


def with_cors(response: Response, request: Request, options: CorsOptions | None = None) -> Response:
    """Attach CORS headers to an already-built response.

    Body and status are left untouched. Calling it again on the same
    response yields the same headers (values are replaced, ``Vary`` is
    merged without duplicates).
    """

    options = options or CorsOptions()
    for name, value in cors_headers(request, options).items():
        if value is None:
            if name in response.headers:
                del response.headers[name]
        else:
            response.headers[name] = value
    response.headers["Vary"] = _merge_vary(response.headers.get("Vary"), "Origin")
    return response


def handle_options(request: Request, options: CorsOptions | None = None) -> Response:
    """Answer a CORS preflight with 204 and an empty body."""

    return with_cors(Response(status_code=204), request, options)
