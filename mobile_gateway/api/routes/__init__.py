from __future__ import annotations

from mobile_gateway.api.routes.health import router as health_router
from mobile_gateway.api.routes.mobile import MOBILE_ROUTES, router as mobile_router

__all__ = ["MOBILE_ROUTES", "health_router", "mobile_router"]
