"""Tests for error classification and global exception handlers.

Every failure must come back as a ``{data: null, error}`` envelope with the
right status code and without implementation details.
"""

import json

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from mobile_gateway.core.config import settings
from mobile_gateway.core.errors import (
    AppError,
    AuthenticationAppError,
    InvalidUpstreamResponseError,
    NotFoundAppError,
    RateLimitAppError,
    UpstreamAppError,
    UpstreamTimeoutAppError,
    ValidationAppError,
)
from mobile_gateway.core.exception_handlers import classify_exception, setup_exception_handlers


def _body(response) -> dict:
    return json.loads(response.body)


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestClassifyException:
    @pytest.mark.parametrize(
        "error_cls, status",
        [
            (ValidationAppError, 400),
            (AuthenticationAppError, 401),
            (NotFoundAppError, 404),
            (RateLimitAppError, 429),
            (UpstreamAppError, 500),
            (InvalidUpstreamResponseError, 502),
            (UpstreamTimeoutAppError, 504),
        ],
    )
    def test_app_errors_use_their_status(self, error_cls, status):
        response = classify_exception(error_cls(code="x", message="Something specific"))

        assert response.status_code == status
        assert _body(response) == {"data": None, "error": "Something specific"}

    def test_unexpected_exception_is_generic_500(self):
        response = classify_exception(RuntimeError("database connection failed"))

        assert response.status_code == 500
        body = _body(response)
        assert body == {"data": None, "error": "Internal Server Error"}

    def test_unexpected_message_exposed_when_enabled(self, monkeypatch):
        monkeypatch.setattr(settings.app, "expose_error_messages", True)

        assert _body(classify_exception(RuntimeError("boom")))["error"] == "boom"
        assert _body(classify_exception(RuntimeError("")))["error"] == "Internal Server Error"

    def test_http_exception_keeps_status(self):
        response = classify_exception(HTTPException(status_code=403, detail="Forbidden"))

        assert response.status_code == 403
        assert _body(response) == {"data": None, "error": "Forbidden"}

    def test_never_raises(self):
        class Hostile(Exception):
            def __str__(self):
                raise RuntimeError("cannot render")

        response = classify_exception(Hostile())

        assert response.status_code == 500
        assert _body(response) == {"data": None, "error": "Internal Server Error"}

    def test_no_stack_trace_in_body(self):
        response = classify_exception(ValueError("Test error with details"))
        text = response.body.decode()

        assert "Traceback" not in text
        assert "ValueError" not in text


class TestRegisteredHandlers:
    def test_app_error_route(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/missing")
        async def missing():
            raise NotFoundAppError(code="order_not_found", message="Order not found")

        response = client.get("/missing")

        assert response.status_code == 404
        assert response.json() == {"data": None, "error": "Order not found"}

    def test_http_exception_route(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/denied")
        async def denied():
            raise HTTPException(status_code=401, detail="Unauthorized")

        response = client.get("/denied")

        assert response.status_code == 401
        assert response.json() == {"data": None, "error": "Unauthorized"}

    def test_unknown_route_is_enveloped(self, client: TestClient):
        response = client.get("/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"data": None, "error": "Not Found"}

    def test_validation_error_is_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/items")
        async def items(page: int):
            return {"page": page}

        response = client.get("/items", params={"page": "abc"})

        assert response.status_code == 400
        body = response.json()
        assert body["data"] is None
        assert body["error"].startswith("query.page:")

    def test_unexpected_exception_route(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/crash")
        async def crash():
            raise RuntimeError("secret internals")

        response = client.get("/crash")

        assert response.status_code == 500
        assert response.json() == {"data": None, "error": "Internal Server Error"}

    def test_handlers_registered(self, app_with_handlers: FastAPI):
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers
