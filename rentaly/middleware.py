"""
FastAPI middleware for request tracing and correlation.

Every request gets a unique id that is returned as X-Request-ID and bound into
the structlog context together with the caller forwarded by the auth layer, so
all log lines emitted while serving the request can be correlated.
"""

from __future__ import annotations

import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from rentaly.logging_config import bind_request_context


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add unique request IDs to each HTTP request.

    This middleware generates a UUID for each incoming request and:
    1. Stores it in request.state.request_id for access in route handlers
    2. Adds it to the response as X-Request-ID header for client correlation
    3. Binds it (plus X-User-Id / X-User-Role) into the structlog context

    Example:
        >>> from rentaly.middleware import RequestIDMiddleware
        >>> app.add_middleware(RequestIDMiddleware)
        >>>
        >>> # Response headers will include:
        >>> # X-Request-ID: 550e8400-e29b-41d4-a716-446655440000
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """
        Process each request by adding a unique request ID.

        Args:
            request: Incoming FastAPI request
            call_next: Next middleware or route handler in chain

        Returns:
            Response with X-Request-ID header added
        """
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        bind_request_context(
            request_id,
            request.headers.get("X-User-Id"),
            request.headers.get("X-User-Role"),
        )

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        return response
