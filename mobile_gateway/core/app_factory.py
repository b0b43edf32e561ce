"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers and
the shared upstream client) so tests can build isolated instances.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from mobile_gateway.adapters.upstream.client import UpstreamClient
from mobile_gateway.api.routes import health_router, mobile_router
from mobile_gateway.core.config import settings
from mobile_gateway.core.exception_handlers import setup_exception_handlers
from mobile_gateway.core.logging import configure_logging
from mobile_gateway.core.middleware import request_id_middleware
from mobile_gateway.core.openapi import apply_openapi_customizations


def create_app(*, upstream: UpstreamClient | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        upstream: Client for the internal API; built from settings if omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log, debug=settings.app.debug)

    upstream_client = upstream or UpstreamClient(base_url=settings.upstream.base_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.upstream.aclose()

    app = FastAPI(
        title="Storefront Mobile API",
        description=(
            "Mobile-facing gateway for the storefront. Forwards each call to the "
            "internal web API and answers with a uniform {data, error} envelope, "
            "per-route CORS and rate limits."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.upstream = upstream_client

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(mobile_router, prefix=settings.app.api_prefix)
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
