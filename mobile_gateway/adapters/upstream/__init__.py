"""Client for the internal storefront API the gateway forwards to."""

from mobile_gateway.adapters.upstream.client import (
    ParsedBody,
    UpstreamClient,
    UpstreamResponse,
    build_async_client,
    parse_json_body,
)

__all__ = [
    "ParsedBody",
    "UpstreamClient",
    "UpstreamResponse",
    "build_async_client",
    "parse_json_body",
]
