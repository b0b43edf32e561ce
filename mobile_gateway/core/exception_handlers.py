"""Error classification and global exception handlers.

``classify_exception`` turns any raised value into an envelope response. It
is used directly by the proxy handlers and, through the handlers registered
in ``setup_exception_handlers``, by every other route of the app.

Mapping:
- AppError subclasses -> their own ``http_status`` and message
- HTTPException -> its status code, ``detail`` as message
- RequestValidationError -> 400 with ``field: message`` entries
- anything else -> 500 with a generic message
"""

import logging

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mobile_gateway.core.config import settings
from mobile_gateway.core.cors import CorsOptions, with_cors
from mobile_gateway.core.envelope import build_envelope
from mobile_gateway.core.errors import AppError
from mobile_gateway.core.logging import get_request_id

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Internal Server Error"

_FRAMEWORK_ERROR_CORS = CorsOptions(credentials=True)


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{location}: {err.get('msg', 'invalid value')}" if location else err.get("msg", ""))
    return "; ".join(p for p in parts if p) or "Invalid request"


def _unexpected_message(exc: BaseException) -> str:
    if settings.app.expose_error_messages:
        message = str(exc).strip()
        if message:
            return message
    return GENERIC_ERROR_MESSAGE


def _classify(exc: BaseException) -> Response:
    if isinstance(exc, AppError):
        logger.warning(
            "app_error_handled",
            extra={
                "error_code": exc.code,
                "error_message": exc.message,
                "status_code": exc.http_status,
                "has_details": bool(exc.details),
                "request_id": get_request_id(),
            },
        )
        return build_envelope(exc.http_status, error=exc.message or GENERIC_ERROR_MESSAGE)

    if isinstance(exc, StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return build_envelope(exc.status_code, error=message, headers=getattr(exc, "headers", None))

    if isinstance(exc, RequestValidationError):
        return build_envelope(400, error=_format_validation_errors(exc))

    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_id": get_request_id(),
        },
    )
    return build_envelope(500, error=_unexpected_message(exc))


def classify_exception(exc: BaseException) -> Response:
    """Map any exception to an envelope response.

    Never raises: if classification itself fails, a bare 500 envelope is
    returned so the request always terminates with valid JSON.

    Args:
        exc: The caught exception (or any other raised value).

    Returns:
        JSONResponse with ``{"data": null, "error": "..."}``.
    """
    try:
        return _classify(exc)
    except Exception:
        return JSONResponse(
            status_code=500,
            content={"data": None, "error": GENERIC_ERROR_MESSAGE},
        )


async def envelope_exception_handler(request: Request, exc: Exception) -> Response:
    """FastAPI exception handler answering with the classified envelope.

    Errors raised by the framework itself on mobile paths (unknown method,
    unknown route) never reach a proxy endpoint, so they are CORS-decorated
    here with the credentialed mobile policy.
    """
    logger.debug(
        "route_exception",
        extra={"request_path": request.url.path, "request_method": request.method},
    )
    response = classify_exception(exc)
    if request.url.path.startswith(settings.app.api_prefix):
        response = with_cors(response, request, _FRAMEWORK_ERROR_CORS)
    return response


def setup_exception_handlers(app) -> None:
    """Register the envelope handlers with a FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(envelope_exception_handler)
    app.exception_handler(StarletteHTTPException)(envelope_exception_handler)
    app.exception_handler(RequestValidationError)(envelope_exception_handler)
    app.exception_handler(Exception)(envelope_exception_handler)
