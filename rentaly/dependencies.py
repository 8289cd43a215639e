"""
FastAPI dependency injection providers.

Dependencies can be overridden in tests using app.dependency_overrides, making
it easy to inject a test database engine or a fixed caller.
"""

from __future__ import annotations

from typing import Generator, Optional

from fastapi import Header
from sqlalchemy.engine import Engine

from rentaly.db.engine import engine
from rentaly.exceptions import AuthenticationError, AuthorizationError
from rentaly.services.state_machine import Caller, Role


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide database engine for dependency injection.

    Yields:
        Engine: SQLAlchemy database engine

    Testing Example:
        >>> app.dependency_overrides[get_db_engine] = lambda: test_engine
        >>> client = TestClient(app)
    """
    yield engine


def get_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Caller:
    """
    Identity of the caller as forwarded by the upstream auth layer.

    Args:
        x_user_id: Authenticated user id (X-User-Id header)
        x_user_role: user, admin or system (X-User-Role header, defaults to user)

    Returns:
        Caller: Authenticated caller

    Raises:
        AuthenticationError: If X-User-Id is missing
        AuthorizationError: If X-User-Role is not a known role
    """
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("Authentication required")

    role = (x_user_role or Role.USER.value).strip().lower()
    if role not in {r.value for r in Role}:
        raise AuthorizationError(f"Unknown role {role!r}")

    return Caller(user_id=x_user_id.strip(), role=role)


def require_admin(caller: Caller) -> Caller:
    """Raise AuthorizationError unless the caller is an admin."""
    if caller.role != Role.ADMIN.value:
        raise AuthorizationError("Admin access required")
    return caller
