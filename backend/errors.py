"""
Error taxonomy and response envelope handlers.

Domain errors are HTTPException subclasses so that services and permission
helpers can raise them the same way route handlers raise HTTPException.
The handlers registered by install_exception_handlers() render every failure
as the standard envelope:

    {"success": false, "message": "...", "error": "...", "errors": [...]}
"""

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth.security import is_production_like

logger = logging.getLogger(__name__)


def _details_exposed() -> bool:
    """Whether raw exception text is included in 500 responses."""
    configured = os.environ.get("EXPOSE_ERROR_DETAILS")
    if configured is None:
        return not is_production_like()
    return configured.lower() in ("1", "true", "yes", "on")


class ValidationFailed(HTTPException):
    def __init__(self, errors: List[Dict[str, str]], message: str = "Validation failed"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
        self.errors = errors


class DuplicateEmail(HTTPException):
    def __init__(self, message: str = "User already exists with this email"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


class Conflict(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


class InvalidCredentials(HTTPException):
    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=message)


class Unauthenticated(HTTPException):
    def __init__(self, message: str = "Not authenticated"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(HTTPException):
    def __init__(self, message: str = "Not authorized"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=message)


class NotFound(HTTPException):
    def __init__(self, message: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=message)


class InternalError(HTTPException):
    def __init__(self, message: str = "Internal server error", error: Optional[str] = None):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)
        self.error = error


def envelope(
    success: bool,
    message: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
    errors: Optional[List[Dict[str, str]]] = None,
) -> Dict[str, Any]:
    """Build a response body, omitting keys that carry no value."""
    body: Dict[str, Any] = {"success": success}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    if errors is not None:
        body["errors"] = errors
    return body


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    body = envelope(
        False,
        message=message,
        errors=getattr(exc, "errors", None),
        error=getattr(exc, "error", None) if _details_exposed() else None,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(body),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for err in exc.errors():
        location = err.get("loc") or ()
        field = str(location[-1]) if location else "body"
        errors.append({"field": field, "message": err.get("msg", "Invalid value")})

    logger.info(f"Validation failed for {request.method} {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=envelope(False, message="Validation failed", errors=errors),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=envelope(
            False,
            message="Internal server error",
            error=str(exc) if _details_exposed() else None,
        ),
    )


def install_exception_handlers(app: FastAPI) -> None:
    """Register the envelope handlers on an application."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
