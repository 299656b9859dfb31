"""API error types and the handlers that render them as ``{"error": message}``."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from TallyTasks.shared.store import StoreError

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(status_code=self.status_code, detail=message or self.message)


class AuthError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid API key"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Task not found"


class ValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class MethodNotAllowed(ApiError):
    status_code = status.HTTP_405_METHOD_NOT_ALLOWED
    message = "Method not allowed"


class InternalError(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def render_error(exc: ApiError) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail))


async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return render_error(MethodNotAllowed())
    if exc.status_code == status.HTTP_404_NOT_FOUND and not isinstance(exc, ApiError):
        return error_response(exc.status_code, "Not found")
    return error_response(exc.status_code, str(exc.detail))


async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(f"Rejected request: {exc.errors()}")
    return render_error(ValidationError())


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    return render_error(InternalError())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return render_error(InternalError())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
