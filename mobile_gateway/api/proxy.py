"""Edge proxy handler factory.

Mobile routes are declared as ``ProxyRoute`` values; ``build_proxy_endpoint``
turns each into a FastAPI endpoint that

1. optionally passes the rate limit gate,
2. forwards the request to the internal route (query string, JSON body and
   ``Authorization`` header preserved, caching disabled),
3. normalizes the upstream answer into the ``{data, error}`` envelope,
4. decorates the result, errors included, with CORS headers.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable
from urllib.parse import quote

from fastapi import APIRouter, Request, Response

from mobile_gateway.adapters.upstream.client import UpstreamClient, UpstreamResponse
from mobile_gateway.core.config import settings
from mobile_gateway.core.cors import CorsOptions, handle_options, with_cors
from mobile_gateway.core.envelope import Envelope, build_envelope, unwrap_envelope
from mobile_gateway.core.errors import InvalidUpstreamResponseError
from mobile_gateway.core.exception_handlers import classify_exception
from mobile_gateway.core.logging import get_request_id
from mobile_gateway.core.rate_limit import RateLimitPolicy, with_rate_limit

logger = logging.getLogger(__name__)

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

# OpenAPI description of every proxied answer.
ENVELOPE_RESPONSES: dict[int | str, dict[str, Any]] = {
    200: {"model": Envelope, "description": "Upstream answer wrapped in the envelope"},
    "default": {"model": Envelope, "description": "Error envelope"},
}

# Builds the response from the upstream answer; the default wraps it in the envelope.
ResponseShaper = Callable[[UpstreamResponse], Response]
# Runs before forwarding; may return a response to short-circuit the call.
Precondition = Callable[[Request], Response | None]


@dataclass(frozen=True)
class ProxyRoute:
    """Declarative description of one proxied mobile route.

    Attributes:
        name: Stable route name, used for logs and rate limit keys.
        path: Path under the mobile prefix, may contain ``{param}`` parts.
        method: HTTP method of the mobile route.
        target: Internal path, may reuse the same ``{param}`` parts.
        query: Static query parameters put in front of the inbound ones.
        rate_limit: Optional per-route rate limit.
        credentials: Whether CORS answers are credentialed.
        summary: Short description for the OpenAPI document.
        precondition: Optional check run before forwarding.
        shape: Optional custom response builder.
    """

    name: str
    path: str
    method: str
    target: str
    query: tuple[tuple[str, str], ...] = ()
    rate_limit: RateLimitPolicy | None = None
    credentials: bool = True
    summary: str | None = None
    precondition: Precondition | None = field(default=None, compare=False)
    shape: ResponseShaper | None = field(default=None, compare=False)


def get_upstream(request: Request) -> UpstreamClient:
    return request.app.state.upstream


def build_target_path(template: str, path_params: dict[str, Any]) -> str:
    """Fill ``{param}`` parts of ``template`` with URL-encoded values.

    Examples:
        >>> build_target_path("/api/products/{id}", {"id": "a b/c"})
        '/api/products/a%20b%2Fc'
    """
    encoded = {k: quote(str(v), safe="") for k, v in path_params.items()}
    return template.format(**encoded)


def forward_headers(request: Request, *, with_body: bool) -> dict[str, str]:
    """Headers sent to the internal API for ``request``."""
    headers = {"X-Mobile-Proxy": "1"}
    authorization = request.headers.get("authorization")
    if authorization:
        headers["Authorization"] = authorization
    request_id = get_request_id()
    if request_id:
        headers[settings.log.request_id_header] = request_id
    if with_body:
        headers["Content-Type"] = "application/json"
    return headers


async def read_json_body(request: Request) -> Any:
    """Inbound JSON body, or ``{}`` when it is missing or malformed."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return {}


def envelope_from_upstream(upstream: UpstreamResponse) -> Response:
    """Rebuild the upstream answer as an envelope with the upstream status."""
    if not upstream.body.ok and settings.app.strict_upstream_json:
        raise InvalidUpstreamResponseError(
            code="upstream_invalid_json",
            message="Upstream returned an invalid response",
            details={"upstream_status": upstream.status_code, "upstream_url": upstream.url},
        )
    data, error = unwrap_envelope(upstream.body.value)
    return build_envelope(upstream.status_code, data=data, error=error)


def build_proxy_endpoint(route: ProxyRoute) -> Callable[[Request], Any]:
    """Create the FastAPI endpoint for ``route``."""

    method = route.method.upper()
    cors = CorsOptions(credentials=route.credentials, methods=(method, "OPTIONS"))
    shape = route.shape or envelope_from_upstream

    async def forward(request: Request) -> Response:
        if route.precondition is not None:
            early = route.precondition(request)
            if early is not None:
                return early

        with_body = method in BODY_METHODS
        json_body = await read_json_body(request) if with_body else None
        params = list(route.query) + list(request.query_params.multi_items())
        path = build_target_path(route.target, dict(request.path_params))

        upstream = await get_upstream(request).request(
            method,
            path,
            origin=str(request.base_url),
            params=params,
            headers=forward_headers(request, with_body=with_body),
            json_body=json_body,
        )
        logger.info(
            "proxy.forward",
            extra={
                "route": route.name,
                "method": method,
                "target": path,
                "upstream_status": upstream.status_code,
                "upstream_json": upstream.body.ok,
            },
        )
        return shape(upstream)

    handler = forward
    if route.rate_limit is not None:
        handler = with_rate_limit(forward, route.rate_limit, scope=route.name)

    async def endpoint(request: Request) -> Response:
        try:
            response = await handler(request)
        except Exception as exc:
            response = classify_exception(exc)
        return with_cors(response, request, cors)

    endpoint.__name__ = f"proxy_{route.name.replace('.', '_').replace('-', '_')}"
    return endpoint


def build_preflight_endpoint(methods: Iterable[str], *, credentials: bool) -> Callable[[Request], Any]:
    cors = CorsOptions(credentials=credentials, methods=tuple(methods))

    async def preflight(request: Request) -> Response:
        return handle_options(request, cors)

    return preflight


def register_proxy_routes(router: APIRouter, routes: Iterable[ProxyRoute]) -> None:
    """Add every route plus one OPTIONS preflight per distinct path."""

    by_path: dict[str, list[ProxyRoute]] = {}
    for route in routes:
        by_path.setdefault(route.path, []).append(route)
        router.add_api_route(
            route.path,
            build_proxy_endpoint(route),
            methods=[route.method.upper()],
            name=route.name,
            summary=route.summary,
            response_model=None,
            responses=ENVELOPE_RESPONSES,
        )

    for path, path_routes in by_path.items():
        methods = [r.method.upper() for r in path_routes] + ["OPTIONS"]
        router.add_api_route(
            path,
            build_preflight_endpoint(methods, credentials=any(r.credentials for r in path_routes)),
            methods=["OPTIONS"],
            include_in_schema=False,
        )
