"""httpx client for the storefront's internal web API.

All upstream calls go through ``UpstreamClient.request`` so timeouts,
cache-busting headers and error translation behave the same for every
proxied route.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from mobile_gateway.core.config import UpstreamSettings, settings
from mobile_gateway.core.errors import UpstreamAppError, UpstreamTimeoutAppError

logger = logging.getLogger(__name__)

# Headers that make every upstream fetch bypass caches.
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, max-age=0",
    "Pragma": "no-cache",
}


@dataclass(frozen=True)
class ParsedBody:
    """Outcome of decoding an upstream body as JSON.

    ``ok`` is False when the body was not valid JSON; ``value`` then holds
    the ``{}`` fallback. An empty body is not an error: it parses as ``{}``
    with ``empty`` set.
    """

    ok: bool
    value: Any
    empty: bool = False


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    body: ParsedBody
    url: str


def parse_json_body(content: bytes) -> ParsedBody:
    """Decode ``content`` as JSON without ever raising.

    Examples:
        >>> parse_json_body(b'{"a": 1}')
        ParsedBody(ok=True, value={'a': 1}, empty=False)
        >>> parse_json_body(b"<html>")
        ParsedBody(ok=False, value={}, empty=False)
        >>> parse_json_body(b"")
        ParsedBody(ok=True, value={}, empty=True)
    """
    if not content or not content.strip():
        return ParsedBody(ok=True, value={}, empty=True)
    try:
        return ParsedBody(ok=True, value=json.loads(content))
    except (ValueError, UnicodeDecodeError):
        return ParsedBody(ok=False, value={})


def build_async_client(
    upstream_settings: UpstreamSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the shared ``httpx.AsyncClient`` with gateway defaults.

    Args:
        upstream_settings: Upstream configuration; defaults to global settings.
        transport: Optional transport (``httpx.MockTransport`` in tests).
    """

    cfg = upstream_settings or settings.upstream
    return httpx.AsyncClient(
        timeout=httpx.Timeout(cfg.timeout_seconds),
        headers={
            "User-Agent": cfg.user_agent,
            "Accept": "application/json",
        },
        follow_redirects=False,
        transport=transport,
    )


class UpstreamClient:
    """Forwards requests to the internal API and decodes their bodies."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        """
        Args:
            client: Preconfigured httpx client; one is built if omitted.
            base_url: Origin of the internal API. When None, callers must pass
                the origin per request (same-origin forwarding).
            timeout_seconds: Per-call deadline; defaults to settings.
        """
        self._client = client or build_async_client()
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout_seconds = timeout_seconds or settings.upstream.timeout_seconds

    async def aclose(self) -> None:
        await self._client.aclose()

    def resolve_url(self, path: str, origin: str | None = None) -> str:
        base = self.base_url or (origin or "").rstrip("/")
        if not base:
            raise UpstreamAppError(
                code="upstream_not_configured",
                message="Upstream origin is not configured",
            )
        return f"{base}{path}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        origin: str | None = None,
        params: list[tuple[str, str]] | None = None,
        headers: Mapping[str, str] | None = None,
        json_body: Any = None,
    ) -> UpstreamResponse:
        """Send one request upstream.

        Args:
            method: HTTP method.
            path: Path on the internal API (may already carry a query string).
            origin: Fallback origin when no base URL is configured.
            params: Query parameters, in order.
            headers: Extra headers to send.
            json_body: JSON-serializable body for write methods.

        Returns:
            UpstreamResponse with the status code and tagged parsed body.

        Raises:
            UpstreamTimeoutAppError: If the deadline elapsed.
            UpstreamAppError: On any transport failure.
        """
        url = self.resolve_url(path, origin)
        request_headers = {**NO_CACHE_HEADERS, **(headers or {})}

        try:
            response = await self._client.request(
                method,
                url,
                params=params or None,
                headers=request_headers,
                json=json_body,
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutAppError(
                code="upstream_timeout",
                message="Upstream timeout",
                details={"upstream_url": url, "timeout_seconds": self.timeout_seconds},
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamAppError(
                code="upstream_unreachable",
                message="Upstream request failed",
                details={"upstream_url": url, "context": {"error_type": type(exc).__name__}},
            ) from exc

        body = parse_json_body(response.content)
        if not body.ok:
            logger.warning(
                "upstream.invalid_json",
                extra={
                    "upstream_url": url,
                    "upstream_status": response.status_code,
                    "content_type": response.headers.get("content-type"),
                },
            )

        return UpstreamResponse(
            status_code=response.status_code,
            body=body,
            url=str(response.request.url),
        )
