"""
Unit tests for middleware components.
"""

from __future__ import annotations

import pytest
import structlog
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from rentaly.middleware import RequestIDMiddleware


@pytest.fixture
def app_with_middleware() -> FastAPI:
    """Create FastAPI app with RequestIDMiddleware for testing."""
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)

    @app.get("/test")
    async def test_endpoint(request: Request) -> dict[str, str]:
        """Test endpoint that returns the request ID and the bound logging context."""
        context = structlog.contextvars.get_contextvars()
        return {
            "request_id": request.state.request_id,
            "logged_request_id": context.get("request_id", ""),
            "caller_id": context.get("caller_id", ""),
            "caller_role": context.get("caller_role", ""),
        }

    return app


@pytest.fixture
def client(app_with_middleware: FastAPI) -> TestClient:
    """FastAPI test client with middleware."""
    return TestClient(app_with_middleware)


@pytest.mark.unit
def test_request_id_middleware_adds_header(client: TestClient) -> None:
    """Test that RequestIDMiddleware adds X-Request-ID header to response."""
    response = client.get("/test")

    assert response.status_code == 200
    assert len(response.headers["X-Request-ID"]) == 36  # UUID length


@pytest.mark.unit
def test_request_id_middleware_matches_header_and_state(client: TestClient) -> None:
    response = client.get("/test")

    assert response.headers["X-Request-ID"] == response.json()["request_id"]


@pytest.mark.unit
def test_request_id_middleware_unique_per_request(client: TestClient) -> None:
    response1 = client.get("/test")
    response2 = client.get("/test")

    assert response1.headers["X-Request-ID"] != response2.headers["X-Request-ID"]


@pytest.mark.unit
def test_request_context_bound_for_logging(client: TestClient) -> None:
    """Test that the request id and forwarded caller are bound into structlog context."""
    response = client.get("/test", headers={"X-User-Id": "user-7", "X-User-Role": "admin"})

    data = response.json()
    assert data["logged_request_id"] == data["request_id"]
    assert data["caller_id"] == "user-7"
    assert data["caller_role"] == "admin"


@pytest.mark.unit
def test_anonymous_request_binds_no_caller(client: TestClient) -> None:
    client.get("/test", headers={"X-User-Id": "user-7"})

    data = client.get("/test").json()

    assert data["caller_id"] == ""
