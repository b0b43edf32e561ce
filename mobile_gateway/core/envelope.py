"""Uniform ``{data, error}`` response envelope.

Every response produced by the gateway, successful or not, goes through
``build_envelope`` so mobile clients can rely on a single shape.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Statuses that must not carry a message body (RFC 9110 6.4.1).
BODILESS_STATUSES = frozenset({204, 304})


class Envelope(BaseModel):
    """Body of every gateway response."""

    data: Any | None = None
    error: str | None = None


def _encode_data(data: Any) -> Any:
    """Convert ``data`` into JSON-compatible primitives.

    Returns None when the value cannot be serialized; the failure is logged
    rather than raised so a bad payload never turns into an unhandled error.
    """
    if data is None:
        return None
    try:
        return jsonable_encoder(data)
    except Exception as exc:
        logger.error(
            "envelope.serialization_failed",
            extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
        )
        return None


def build_envelope(
    status: int,
    data: Any = None,
    error: str | None = None,
    *,
    headers: dict[str, str] | None = None,
) -> Response:
    """Build a JSON response carrying the ``{data, error}`` envelope.

    Args:
        status: HTTP status code (100-599).
        data: Any serializable payload; no shape validation is performed.
        error: Human-readable error message, or None on success.
        headers: Optional extra response headers.

    Returns:
        JSONResponse with the envelope body and the given status. For 1xx,
        204 and 304 an empty ``Response`` is returned instead, since those
        statuses cannot carry a body.

    Raises:
        ValueError: If status is not a valid HTTP status code.
    """
    if isinstance(status, bool) or not isinstance(status, int) or not 100 <= status <= 599:
        raise ValueError(f"invalid HTTP status code: {status!r}")

    if status < 200 or status in BODILESS_STATUSES:
        return Response(status_code=status, headers=headers)

    body = {"data": _encode_data(data), "error": error or None}
    return JSONResponse(status_code=status, content=body, headers=headers)


def unwrap_envelope(payload: Any) -> tuple[Any, str | None]:
    """Split an upstream body into ``(data, error)``.

    Bodies that already look like an envelope (a mapping with ``data`` or
    ``error``) are unwrapped, keeping a null ``data`` as null. Anything else
    is treated as data as-is.
    """
    if isinstance(payload, dict) and ("data" in payload or "error" in payload):
        return payload.get("data"), _stringify_error(payload.get("error"))
    return payload, None


def _stringify_error(error: Any) -> str | None:
    """Coerce an upstream error value into a single message string."""
    if error is None or error == "":
        return None
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    if isinstance(error, (list, tuple)):
        return "; ".join(str(item) for item in error)
    return str(error)
