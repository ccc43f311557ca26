"""Exception handlers that render every failure with the boundary error shape.

    {"success": false, "error": {"code", "message", "details"?, "timestamp"}}
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from story_engine.errors import (
    DomainError,
    create_context,
    should_log,
    to_http_response,
    validation_error,
)

logger = logging.getLogger(__name__)


def _respond(error: BaseException) -> JSONResponse:
    status, body = to_http_response(error)
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _context(request: Request):
    return create_context(
        method=request.method,
        path=request.url.path,
        request_id=request.headers.get("x-request-id"),
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.context is None:
        exc = exc.with_context(_context(request))
    if should_log(exc):
        logger.error(
            "%s %s failed: %s %s", request.method, request.url.path, exc.code.value, exc.message,
        )
    return _respond(exc)


async def request_validation_handler(
    request: Request, exc: RequestValidationError | ValidationError,
) -> JSONResponse:
    error = validation_error(
        "Invalid request body",
        details={"errors": [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
            for e in exc.errors()
        ]},
        context=_context(request),
    )
    return _respond(error)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s crashed", request.method, request.url.path)
    return _respond(exc)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
