"""Tests for global exception handlers.

Validates that every domain error maps to its stable HTTP status, that
transient errors carry the retry hint, and that unexpected errors never
leak internals.
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.errors import (
    AppError,
    AuthRejectedError,
    AuthUnavailableError,
    InvalidCredentialError,
    InvalidInputError,
    NotFoundError,
    RateLimitedError,
    StorageUnavailableError,
    ValidationAppError,
)
from app.core.exception_handlers import setup_exception_handlers, status_for


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    """Create test client with handlers enabled."""
    return TestClient(app_with_handlers)


class TestStatusMapping:
    """Each error class maps to exactly one status."""

    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (InvalidCredentialError(), 401),
            (AuthRejectedError(), 401),
            (AuthUnavailableError(), 503),
            (RateLimitedError(category="like", retry_after=0.2), 429),
            (InvalidInputError("bad"), 400),
            (ValidationAppError(code="x", message="y"), 400),
            (NotFoundError(), 404),
            (StorageUnavailableError(), 503),
            (AppError(code="other", message="other"), 400),
        ],
    )
    def test_status_for(self, error: AppError, status: int):
        assert status_for(error) == status

    @pytest.mark.parametrize(
        ("error", "retryable"),
        [
            (InvalidCredentialError(), False),
            (AuthRejectedError(), False),
            (InvalidInputError("bad"), False),
            (NotFoundError(), False),
            (AuthUnavailableError(), True),
            (RateLimitedError(category="fetch", retry_after=1.0), True),
            (StorageUnavailableError(), True),
        ],
    )
    def test_transient_and_terminal_errors_are_distinguishable(self, error: AppError, retryable: bool):
        assert error.retryable is retryable


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify InvalidInputError returns HTTP 400 with details."""
        @app_with_handlers.get("/test-validation")
        async def test_endpoint():
            raise InvalidInputError(
                "Scene name is too long",
                details={"field": "scene", "max_value": 64, "actual_value": 90},
            )

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "invalid_input"
        assert data["error"]["message"] == "Scene name is too long"
        assert data["error"]["details"]["max_value"] == 64
        assert "request_id" in data["error"]

    def test_rate_limited_sets_retry_after_header(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-rate-limited")
        async def test_endpoint():
            raise RateLimitedError(category="submit", retry_after=1.2)

        response = client.get("/test-rate-limited")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "2"
        data = response.json()
        assert data["error"]["details"] == {"category": "submit", "retry_after": 1.2}

    def test_retry_after_header_is_at_least_one_second(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-rate-limited-short")
        async def test_endpoint():
            raise RateLimitedError(category="like", retry_after=0.01)

        response = client.get("/test-rate-limited-short")

        assert response.headers["Retry-After"] == "1"

    def test_unavailable_errors_return_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-auth-down")
        async def auth_down():
            raise AuthUnavailableError()

        @app_with_handlers.get("/test-storage-down")
        async def storage_down():
            raise StorageUnavailableError()

        assert client.get("/test-auth-down").json()["error"]["code"] == "auth_unavailable"
        assert client.get("/test-storage-down").status_code == 503

    def test_error_without_details_omits_field(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-not-found")
        async def test_endpoint():
            raise NotFoundError()

        response = client.get("/test-not-found")

        assert response.status_code == 404
        assert set(response.json()["error"]) == {"code", "message", "request_id"}


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_handler_registered(self, app_with_handlers: FastAPI):
        """Verify fallback exception handler is registered."""
        assert Exception in app_with_handlers.exception_handlers

    def test_general_exception_handler_never_leaks_internals(self):
        """Verify the original message and stack trace stay out of the response."""
        from app.core.exception_handlers import general_exception_handler

        request = MagicMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("database is locked at /var/lib/structures.db")
        response = asyncio.run(general_exception_handler(request, exc))

        response_body = response.body if isinstance(response.body, bytes) else bytes(response.body)
        data = json.loads(response_body.decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "structures.db" not in response_body.decode()
        assert "Traceback" not in response_body.decode()
        assert "RuntimeError" not in response_body.decode()


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
