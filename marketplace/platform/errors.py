"""
Consistent error handling for the marketplace engine.

All errors raised across the engine and its API use these classes and the
shared {"error": {"code", "message", "details"}} shape. Stack traces are
NEVER returned to clients.

Status codes:
- 400: InvalidArgumentError (malformed id, empty item list)
- 401: AuthenticationError (no caller identity where one is required)
- 403: PermissionDeniedError (caller not entitled)
- 404: NotFoundError (node referenced by a new purchase does not exist)
- 409: DuplicateReferenceError (payment reference reused with other items)
- 410: UnavailableError (entitled, but the asset was removed from the catalog)
- 500: Internal Server Error
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class AppError(Exception):
    """
    Base for every error the engine surfaces to a caller.

    Subclasses fix the code and status; `details` carries the node id,
    payment reference or field that the caller needs to act on.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to API error response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class InvalidArgumentError(AppError):
    """Malformed node or user id, empty item list, bad money amount (400)."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="INVALID_ARGUMENT",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class AuthenticationError(AppError):
    """No caller identity on a purchase or delivery request (401)."""

    def __init__(self, message: str = "A user identity is required", details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="AUTHENTICATION_ERROR",
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
        )


class PermissionDeniedError(AppError):
    """Caller does not own the node, directly or through a folder (403)."""

    def __init__(self, message: str = "You have not purchased this item", details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="PERMISSION_DENIED",
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
        )


class NotFoundError(AppError):
    """Catalog node, purchase or category not found (404)."""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
        )


class DuplicateReferenceError(AppError):
    """
    Payment reference already bound to a different purchase payload (409).

    This is a data-corruption signal, not a retry: the caller must flag it.
    """

    def __init__(self, payment_ref: str, existing_purchase_id: str):
        self.payment_ref = payment_ref
        self.existing_purchase_id = existing_purchase_id
        super().__init__(
            code="DUPLICATE_REFERENCE",
            message=f"Payment reference '{payment_ref}' is already bound to a different set of items",
            status_code=status.HTTP_409_CONFLICT,
            details={"payment_ref": payment_ref, "purchase_id": existing_purchase_id},
        )


class UnavailableError(AppError):
    """Caller is entitled but the asset is no longer in the catalog (410)."""

    def __init__(self, node_id: str, title: Optional[str] = None):
        self.node_id = node_id
        self.title = title
        details: dict[str, Any] = {"node_id": node_id}
        if title:
            details["title"] = title
        super().__init__(
            code="ASSET_UNAVAILABLE",
            message="This item was purchased but is no longer available for delivery",
            status_code=status.HTTP_410_GONE,
            details=details,
        )


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracing."""
    return str(uuid.uuid4())


def get_correlation_id(request: Request) -> str:
    """
    Get correlation ID from request or generate new one.

    Checks X-Correlation-ID header first, then request state.
    """
    correlation_id = request.headers.get("X-Correlation-ID")
    if correlation_id:
        return correlation_id

    if hasattr(request.state, "correlation_id"):
        return request.state.correlation_id

    return generate_correlation_id()


def _log_app_error(request: Request, exc: AppError, correlation_id: str) -> None:
    extra = {
        "correlation_id": correlation_id,
        "error_code": exc.code,
        "status_code": exc.status_code,
        "path": request.url.path,
        "method": request.method,
    }
    for key in ("node_id", "payment_ref", "purchase_id", "field"):
        if key in exc.details:
            extra[key] = exc.details[key]
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(level, "api.app_error", extra=extra)


def _error_response(status_code: int, content: dict, correlation_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={"X-Correlation-ID": correlation_id},
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Middleware that catches all exceptions and returns consistent error responses.

    IMPORTANT: Stack traces are NEVER returned to clients.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = get_correlation_id(request)
        request.state.correlation_id = correlation_id

        try:
            response = await call_next(request)
            response.headers["X-Correlation-ID"] = correlation_id
            return response

        except AppError as e:
            _log_app_error(request, e, correlation_id)
            return _error_response(e.status_code, e.to_dict(), correlation_id)

        except HTTPException as e:
            logger.warning(
                "api.http_exception",
                extra={
                    "correlation_id": correlation_id,
                    "status_code": e.status_code,
                    "detail": e.detail,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return _error_response(
                e.status_code,
                {"error": {"code": "HTTP_ERROR", "message": str(e.detail), "details": {}}},
                correlation_id,
            )

        except Exception as e:
            logger.exception(
                "api.unhandled_exception",
                extra={
                    "correlation_id": correlation_id,
                    "error_type": type(e).__name__,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return _error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                {
                    "error": {
                        "code": "INTERNAL_ERROR",
                        "message": "An unexpected error occurred",
                        "details": {"correlation_id": correlation_id},
                    }
                },
                correlation_id,
            )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Exception handler form of the middleware's AppError branch."""
    correlation_id = get_correlation_id(request)
    _log_app_error(request, exc, correlation_id)
    return _error_response(exc.status_code, exc.to_dict(), correlation_id)
