"""
errors.py — Error taxonomy + envelope handlers
===============================================
Every failure the room service can produce maps onto one of these classes.
The FastAPI handlers render them as the uniform `{success, error, code}`
envelope; the race client maps envelopes back onto the same classes.
"""

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class RaceError(Exception):
    def __init__(self, code: str, message: str, status: int = 400, details: dict | None = None):
        self.code = code
        self.message = message
        self.status = status
        self.details = details or {}
        super().__init__(message)


class ValidationError(RaceError):
    def __init__(self, code: str = "VALIDATION_ERROR", message: str = "Invalid input", details: dict | None = None):
        super().__init__(code, message, 400, details)


class CapacityError(RaceError):
    def __init__(self, code: str = "CAPACITY_ERROR", message: str = "Room capacity rule violated", details: dict | None = None):
        super().__init__(code, message, 400, details)


class AuthorizationError(RaceError):
    def __init__(self, code: str = "NOT_AUTHORIZED", message: str = "Not allowed", details: dict | None = None):
        super().__init__(code, message, 403, details)


class NotFoundError(RaceError):
    def __init__(self, code: str = "NOT_FOUND", message: str = "Resource not found", details: dict | None = None):
        super().__init__(code, message, 404, details)


class StorageError(RaceError):
    def __init__(self, code: str = "STORAGE_ERROR", message: str = "Room storage failure", details: dict | None = None):
        super().__init__(code, message, 500, details)


class CodeAllocationError(StorageError):
    def __init__(self, message: str = "Could not allocate a unique room code", details: dict | None = None):
        super().__init__("CODE_ALLOCATION_FAILED", message, details)


class NetworkError(RaceError):
    """Client-side: the call never produced a usable response."""

    def __init__(self, message: str = "Network request failed", details: dict | None = None):
        super().__init__("NETWORK_ERROR", message, 0, details)


CAPACITY_CODES = {"CAPACITY_ERROR", "ROOM_FULL", "RACE_IN_PROGRESS", "NOT_ENOUGH_PLAYERS"}

_STATUS_TO_ERROR: dict[int, type[RaceError]] = {
    403: AuthorizationError,
    404: NotFoundError,
    500: StorageError,
}


def error_from_envelope(status: int, body: dict) -> RaceError:
    """Rebuild a RaceError from a `{success: false, error, code}` response."""
    message = body.get("error") or f"HTTP {status}"
    code = body.get("code")
    if status == 400:
        cls = CapacityError if code in CAPACITY_CODES else ValidationError
    else:
        cls = _STATUS_TO_ERROR.get(status)
    if cls is None:
        return RaceError(code or "HTTP_ERROR", message, status)
    if code is None:
        return cls(message=message)
    return cls(code, message)


def envelope_error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"success": False, "error": message, "code": code},
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RaceError)
    async def race_error_handler(request: Request, exc: RaceError):
        if exc.status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
        return envelope_error(exc.status, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Missing required fields"
        return envelope_error(400, "VALIDATION_ERROR", message)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        content = {"success": False, "error": "Internal server error", "code": "INTERNAL_ERROR"}
        if app.debug:
            content["detail"] = str(exc)
            content["traceback"] = traceback.format_exc()
        return JSONResponse(status_code=500, content=content)
