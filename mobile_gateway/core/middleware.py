"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a correlation id. The id is also
forwarded to the internal API by the proxy handlers so gateway and upstream
logs can be joined.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from mobile_gateway.core.config import settings
from mobile_gateway.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a request id to the context and to the response.

    The incoming ``X-Request-ID`` header (configurable via
    LOG_REQUEST_ID_HEADER) is reused when present, otherwise a UUID4 is
    generated. The response gets the id back together with
    ``X-Request-Duration-ms``.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
