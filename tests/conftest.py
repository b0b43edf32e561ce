"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any import that might load settings.
The internal storefront API is replaced by an ``httpx.MockTransport``.
"""

import os

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("UPSTREAM_BASE_URL", "http://storefront.internal")
os.environ.setdefault("UPSTREAM_TIMEOUT_SECONDS", "5")
os.environ.setdefault("CORS_ALLOWED_ORIGINS", "https://shop.example.com")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Callable  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from mobile_gateway.adapters.upstream.client import UpstreamClient, build_async_client  # noqa: E402
from mobile_gateway.core.app_factory import create_app  # noqa: E402
from mobile_gateway.core.rate_limit import set_rate_limiter  # noqa: E402

UPSTREAM_BASE_URL = "http://storefront.internal"


@pytest.fixture(autouse=True)
def fresh_rate_limiter():
    """Every test starts with empty rate limit counters."""
    set_rate_limiter(None)
    yield
    set_rate_limiter(None)


@pytest.fixture
def make_client() -> Callable[..., TestClient]:
    """Build a TestClient whose upstream is served by ``handler``."""

    def _make(handler, **client_kwargs) -> TestClient:
        transport = httpx.MockTransport(handler)
        upstream = UpstreamClient(
            build_async_client(transport=transport),
            base_url=UPSTREAM_BASE_URL,
        )
        return TestClient(create_app(upstream=upstream), **client_kwargs)

    return _make
