"""
Unit tests for FastAPI dependency injection.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from rentaly.dependencies import get_caller, get_db_engine, require_admin
from rentaly.exceptions import AuthenticationError, AuthorizationError
from rentaly.routes.errors import register_exception_handlers
from rentaly.services.state_machine import Caller


@pytest.fixture
def client() -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/whoami")
    def whoami(caller: Caller = Depends(get_caller)) -> dict[str, str]:
        return {"user_id": caller.user_id, "role": caller.role}

    return TestClient(app)


@pytest.mark.unit
def test_get_db_engine_dependency() -> None:
    """Test that get_db_engine returns the engine instance."""
    engine = next(get_db_engine())

    assert isinstance(engine, Engine)


@pytest.mark.unit
def test_dependency_injection_can_be_overridden() -> None:
    app = FastAPI()

    @app.get("/test")
    def test_endpoint(engine: Engine = Depends(get_db_engine)) -> dict[str, str]:
        return {"engine": str(engine.url)}

    mock_engine = Mock(spec=Engine)
    mock_engine.url = "mock://"
    app.dependency_overrides[get_db_engine] = lambda: mock_engine

    response = TestClient(app).get("/test")

    assert response.json() == {"engine": "mock://"}


@pytest.mark.unit
def test_caller_defaults_to_user_role(client: TestClient) -> None:
    response = client.get("/whoami", headers={"X-User-Id": "user-1"})

    assert response.json() == {"user_id": "user-1", "role": "user"}


@pytest.mark.unit
def test_caller_role_normalised(client: TestClient) -> None:
    response = client.get("/whoami", headers={"X-User-Id": "ops", "X-User-Role": " Admin "})

    assert response.json() == {"user_id": "ops", "role": "admin"}


@pytest.mark.unit
def test_missing_user_id_is_401(client: TestClient) -> None:
    response = client.get("/whoami")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "unauthenticated"


@pytest.mark.unit
def test_unknown_role_is_403(client: TestClient) -> None:
    response = client.get("/whoami", headers={"X-User-Id": "u", "X-User-Role": "root"})

    assert response.status_code == 403


@pytest.mark.unit
def test_get_caller_direct_call() -> None:
    with pytest.raises(AuthenticationError):
        get_caller("  ", None)
    assert get_caller("u1", "system") == Caller("u1", "system")


@pytest.mark.unit
def test_require_admin() -> None:
    assert require_admin(Caller("ops", "admin")).role == "admin"
    with pytest.raises(AuthorizationError):
        require_admin(Caller("svc", "system"))
