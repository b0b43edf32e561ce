"""Mobile API routes.

Every route is a thin forward to the equivalent internal web route, so the
table below is the whole surface of the mobile API.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from mobile_gateway.adapters.upstream.client import UpstreamResponse
from mobile_gateway.api.proxy import ProxyRoute, register_proxy_routes
from mobile_gateway.core.cors import CorsOptions, handle_options, with_cors
from mobile_gateway.core.envelope import build_envelope, unwrap_envelope
from mobile_gateway.core.rate_limit import RateLimitPolicy

router = APIRouter(tags=["Mobile"])


def require_authorization(request: Request) -> Response | None:
    """Reject requests that carry no session token."""
    if not request.headers.get("authorization"):
        return build_envelope(401, error="Unauthorized")
    return None


def session_from_profile(upstream: UpstreamResponse) -> Response:
    """Reshape the profile payload into ``{user, orders}``."""
    if not 200 <= upstream.status_code < 300:
        _, error = unwrap_envelope(upstream.body.value)
        return build_envelope(upstream.status_code, error=error or "Failed to load session")

    profile = upstream.body.value.get("data") if isinstance(upstream.body.value, dict) else None
    if not isinstance(profile, dict):
        profile = {}
    return build_envelope(
        200,
        data={"user": profile.get("user"), "orders": profile.get("orders") or []},
    )


MOBILE_ROUTES: tuple[ProxyRoute, ...] = (
    ProxyRoute(
        name="auth.session",
        path="/auth/session",
        method="GET",
        target="/api/profile",
        rate_limit=RateLimitPolicy(limit=60, window_seconds=60),
        precondition=require_authorization,
        shape=session_from_profile,
        summary="Get session",
    ),
    ProxyRoute(
        name="hero",
        path="/hero",
        method="GET",
        target="/api/hero",
        summary="Get hero slides",
    ),
    ProxyRoute(
        name="delivery.cities",
        path="/delivery/cities",
        method="GET",
        target="/api/admin/delivery-cities",
        query=(("active", "true"),),
        summary="List active delivery cities",
    ),
    ProxyRoute(
        name="orders.list",
        path="/orders",
        method="GET",
        target="/api/my-orders",
        summary="List orders",
    ),
    ProxyRoute(
        name="orders.create",
        path="/orders",
        method="POST",
        target="/api/orders",
        summary="Create order",
    ),
    ProxyRoute(
        name="orders.detail",
        path="/orders/{id}",
        method="GET",
        target="/api/my-orders/by-id/{id}",
        summary="Get order by id",
    ),
    ProxyRoute(
        name="payments.transactions",
        path="/payments/transactions",
        method="GET",
        target="/api/payments",
        summary="List payment transactions",
    ),
    ProxyRoute(
        name="payments.verify",
        path="/payments/verify",
        method="POST",
        target="/api/payments/verify",
        rate_limit=RateLimitPolicy(limit=10, window_seconds=60),
        summary="Verify payment",
    ),
    ProxyRoute(
        name="products.list",
        path="/products",
        method="GET",
        target="/api/products",
        summary="List products",
    ),
    ProxyRoute(
        name="products.detail",
        path="/products/{id}",
        method="GET",
        target="/api/products/{id}",
        summary="Get product by id",
    ),
    ProxyRoute(
        name="profile.addresses.update",
        path="/profile/addresses/{id}",
        method="PUT",
        target="/api/profile/addresses/{id}",
        summary="Update address",
    ),
    ProxyRoute(
        name="profile.addresses.delete",
        path="/profile/addresses/{id}",
        method="DELETE",
        target="/api/profile/addresses/{id}",
        summary="Delete address",
    ),
    ProxyRoute(
        name="search",
        path="/search",
        method="GET",
        target="/api/analytics/search",
        rate_limit=RateLimitPolicy(limit=120, window_seconds=60),
        summary="Search",
    ),
    ProxyRoute(
        name="shipping.fee",
        path="/shipping/fee",
        method="GET",
        target="/api/shipping/fee",
        summary="Compute shipping fee",
    ),
    ProxyRoute(
        name="stock-alerts",
        path="/stock-alerts",
        method="POST",
        target="/api/stock-alerts",
        summary="Subscribe stock alerts",
    ),
)

register_proxy_routes(router, MOBILE_ROUTES)


_PUBLIC_CORS = CorsOptions(credentials=False, methods=("GET", "OPTIONS"))


@router.options("/openapi.json", include_in_schema=False)
async def openapi_preflight(request: Request) -> Response:
    return handle_options(request, _PUBLIC_CORS)


@router.get("/openapi.json", include_in_schema=False)
async def mobile_openapi(request: Request) -> Response:
    """OpenAPI document of the gateway, readable from any origin."""
    schema = request.app.openapi()
    return with_cors(JSONResponse(schema), request, _PUBLIC_CORS)
