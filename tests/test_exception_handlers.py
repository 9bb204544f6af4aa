"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.errors import AppError, StoreAppError, ValidationAppError
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def test_endpoint():
            raise ValidationAppError(code="phone_number_required", message="Phone number is required")

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "phone_number_required"
        assert data["error"]["message"] == "Phone number is required"
        assert "request_id" in data["error"]
        assert "details" not in data["error"]

    def test_store_error_returns_503_with_details(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-store")
        async def test_endpoint():
            raise StoreAppError(
                code="store_unavailable",
                message="Counter store operation 'ping' failed",
                details={"operation": "ping", "backend": "redis"},
            )

        response = client.get("/test-store")

        assert response.status_code == 503
        data = response.json()
        assert data["error"]["code"] == "store_unavailable"
        assert data["error"]["details"]["operation"] == "ping"

    def test_str_of_app_error_is_message(self):
        err = AppError(code="x", message="something failed")

        assert str(err) == "something failed"


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_generic_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-crash")
        async def test_endpoint():
            raise RuntimeError("redis://:hunter2@cache exploded")

        response = client.get("/test-crash")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"
        assert "hunter2" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "POST"

        response = asyncio.run(general_exception_handler(request, ValueError("Test error with details")))

        body = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert "Traceback" not in json.dumps(body)
        assert "ValueError" not in json.dumps(body)
        assert "request_id" in body["error"]


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
