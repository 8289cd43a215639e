"""
Exception handlers rendering business errors as JSON.

Every failure leaves the API as ``{"error": {"code", "message", "details"}}``
with the status carried by the exception. Unexpected exceptions are logged
with their traceback and rendered as a bare 500 internal_error.
"""

from __future__ import annotations

from typing import cast

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rentaly.exceptions import InternalError, RentalError, ValidationError
from rentaly.routes._encoding import render

logger = structlog.get_logger(__name__)


def error_response(err: RentalError) -> JSONResponse:
    return JSONResponse(
        status_code=err.status_code,
        content={"error": render(err.to_dict())},
    )


async def handle_rental_error(request: Request, exc: Exception) -> JSONResponse:
    err = cast(RentalError, exc)
    if err.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=err.code)
    else:
        logger.info("request_rejected", path=request.url.path, code=err.code)
    return error_response(err)


async def handle_request_validation(request: Request, exc: Exception) -> JSONResponse:
    errors = cast(RequestValidationError, exc).errors()
    missing = [".".join(str(p) for p in e["loc"][1:]) for e in errors if e["type"] == "missing"]
    err = ValidationError(
        "Missing required fields" if missing else "Invalid request payload",
        code="missing_fields" if missing else None,
        details={"errors": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in errors]},
    )
    return error_response(err)


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
    return error_response(InternalError("Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON error handlers on an application."""
    app.add_exception_handler(RentalError, handle_rental_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)
