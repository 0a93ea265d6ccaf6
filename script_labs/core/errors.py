"""
Error taxonomy and normalization.

AppError is the only exception routes raise on purpose. Anything else that
reaches the handlers is classified by shape (driver error codes, JWT errors,
pydantic errors) into an AppError, or falls back to a generic 500.
"""

import asyncio
import logging
import os
import re
import sys
import threading
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from script_labs.config import settings
from script_labs.core.validation import format_validation_errors

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Something went wrong!"

# Postgres SQLSTATE codes
PG_INVALID_TEXT_REPRESENTATION = "22P02"
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"

# Document-store duplicate key error code
DUPLICATE_KEY_CODE = 11000

_QUOTED_VALUE_RE = re.compile(r"([\"'])(\\?.)*?\1")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class AppError(Exception):
    """Operational error with an HTTP status and a message safe to show to callers."""

    def __init__(self, message: str, status_code: int = 500, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.status = "fail" if str(status_code).startswith("4") else "error"
        self.is_operational = True


class AuthenticationError(AppError):
    def __init__(self, message: str, code: str):
        super().__init__(message, 401, code)


def _pg_code(exc: BaseException) -> Optional[str]:
    return getattr(exc, "pgcode", None)


def classify_error(exc: BaseException) -> Optional[AppError]:
    """Map a known upstream error shape to an AppError, or return None."""
    if isinstance(exc, AppError):
        return exc

    code = _pg_code(exc)
    if code == PG_INVALID_TEXT_REPRESENTATION:
        return AppError("Resource not found", 404)

    if getattr(exc, "code", None) == DUPLICATE_KEY_CODE and getattr(exc, "errmsg", None):
        match = _QUOTED_VALUE_RE.search(exc.errmsg)
        value = match.group(0) if match else exc.errmsg
        return AppError(f"Duplicate field value: {value}. Please use another value!", 400)

    if isinstance(exc, ValidationError):
        messages = [err["msg"] for err in exc.errors()]
        return AppError(f"Invalid input data. {'. '.join(messages)}", 400)

    # ExpiredSignatureError is a subclass of InvalidTokenError
    if isinstance(exc, jwt.ExpiredSignatureError):
        return AppError("Your token has expired! Please log in again.", 401)
    if isinstance(exc, jwt.InvalidTokenError):
        return AppError("Invalid token. Please log in again!", 401)

    if code == PG_UNIQUE_VIOLATION:
        return AppError("Duplicate entry detected", 400)
    if code == PG_FOREIGN_KEY_VIOLATION:
        return AppError("Related resource not found", 400)
    return None


def normalize_error(exc: Optional[BaseException]) -> AppError:
    if exc is None:
        return AppError(DEFAULT_ERROR_MESSAGE, 500)
    classified = classify_error(exc)
    if classified is not None:
        return classified
    status_code = getattr(exc, "status_code", None) or 500
    message = str(exc) or DEFAULT_ERROR_MESSAGE
    return AppError(message, status_code)


def _log_error(request: Request, error: AppError, exc: BaseException):
    if settings.is_test:
        return
    logger.error("%s %s - %s", request.method, request.url.path, error.message)
    if settings.is_development:
        logger.error("Stack: %s", "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))


def error_response(request: Request, error: AppError, exc: Optional[BaseException] = None,
                   extra: Optional[Dict[str, Any]] = None) -> JSONResponse:
    exc = exc or error
    _log_error(request, error, exc)

    body: Dict[str, Any] = {"message": error.message or DEFAULT_ERROR_MESSAGE}
    if error.code:
        body["code"] = error.code
    if settings.is_development:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        raw = exc.__cause__ or exc
        body["error"] = {"name": type(raw).__name__, "message": str(raw)}

    content: Dict[str, Any] = {
        "success": False,
        "status": error.status,
        "error": body,
        "timestamp": utc_timestamp(),
        "path": request.url.path,
        "method": request.method,
    }
    if extra:
        content.update(extra)
    return JSONResponse(status_code=error.status_code, content=content)


async def app_error_handler(request: Request, exc: AppError):
    return error_response(request, exc)


async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return error_response(request, exc, extra={"message": exc.message})


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    error = AppError(f"Validation Error: {format_validation_errors(exc.errors())}", 400)
    return error_response(request, error, exc)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        if request.url.path.startswith("/api/"):
            return JSONResponse(
                status_code=404,
                content={
                    "success": False,
                    "error": {"message": "API endpoint not found", "code": "ENDPOINT_NOT_FOUND"},
                    "timestamp": utc_timestamp(),
                },
            )
        return PlainTextResponse(
            "The page cannot be found on backend. Frontend is served separately.",
            status_code=404,
        )
    response = error_response(request, AppError(str(exc.detail), exc.status_code), exc)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    return error_response(request, normalize_error(exc), exc)


def _terminate(kind: str, exc: BaseException):
    logger.critical("%s: %s", kind, exc)
    logger.critical("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    logging.shutdown()
    os._exit(1)


def install_process_error_hooks():
    """Log and exit on failures nothing else caught; restarts belong to the supervisor."""

    def excepthook(exc_type, exc, tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc, tb)
            return
        _terminate("Uncaught Exception", exc)

    def thread_excepthook(args):
        if args.exc_type is SystemExit:
            return
        _terminate("Uncaught Exception in thread", args.exc_value)

    sys.excepthook = excepthook
    threading.excepthook = thread_excepthook


def install_loop_error_hook(loop: asyncio.AbstractEventLoop):
    def handler(loop, context):
        exc = context.get("exception")
        if exc is None:
            logger.error("Event loop error: %s", context.get("message"))
            return
        _terminate("Unhandled Rejection", exc)

    loop.set_exception_handler(handler)
