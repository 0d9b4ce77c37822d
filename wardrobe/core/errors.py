"""Error normalization and handlers."""

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from wardrobe.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id
        self.details = details or {}


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class UnauthorizedError(AppError):
    """Missing or invalid identity. Never carries internal state."""
    code = "unauthorized"
    status_code = 401


class ForbiddenError(AppError):
    code = "forbidden"
    status_code = 403


class QuotaExceededError(AppError):
    """Raised when the quota guard denies an action.

    `reason` is either REASON_INACTIVE or REASON_LIMIT so clients can render
    the matching upgrade prompt.
    """
    code = "quota_exceeded"
    status_code = 429

    REASON_INACTIVE = "inactive_subscription"
    REASON_LIMIT = "limit_reached"

    def __init__(self, message: str, *, reason: str, remaining: int = 0, **kwargs):
        details = dict(kwargs.pop("details", None) or {})
        details.update({"reason": reason, "remaining": remaining})
        if reason == self.REASON_INACTIVE and "status_code" not in kwargs:
            kwargs["status_code"] = 403
        super().__init__(message, details=details, **kwargs)
        self.reason = reason
        self.remaining = remaining


class UpstreamServiceError(AppError):
    """Labeler, recommender or billing provider failed or returned malformed data."""
    code = "upstream_failure"
    status_code = 502
    retryable = True


class SignatureInvalidError(AppError):
    code = "signature_invalid"
    status_code = 400


class StorageUnavailableError(AppError):
    """Profile store failure. Never to be read as "no usage yet"."""
    code = "storage_unavailable"
    status_code = 503
    retryable = True


class ReconciliationError(AppError):
    code = "reconciliation_failed"
    status_code = 500


logger = logging.getLogger("wardrobe.errors")

_HTTP_CODES = {
    404: "not_found",
    405: "method_not_allowed",
}


def _request_id_for(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or uuid4().hex


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    *,
    details: Optional[Dict[str, Any]] = None,
    retryable: bool = False,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """Every error body has the same shape: {"error": {code, message, request_id, ...}, "detail": message}."""
    rid = request_id or _request_id_for(request)
    error: Dict[str, Any] = {"code": code, "message": message, "request_id": rid, **(details or {})}
    if retryable:
        error["retryable"] = True
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": message},
        headers={"x-request-id": rid},
    )


async def app_error_handler(request: Request, exc: AppError):
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "app.error",
        extra={"error_code": exc.code, "error_message": exc.message, "status": exc.status_code, **exc.details},
    )
    return _error_response(
        request,
        exc.status_code,
        exc.code,
        exc.message,
        details=exc.details,
        retryable=exc.retryable,
        request_id=exc.request_id,
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = _HTTP_CODES.get(exc.status_code, "http_error")
    logger.warning("http.error", extra={"error_code": code, "status": exc.status_code})
    return _error_response(request, exc.status_code, code, str(exc.detail or "HTTP error"))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled.exception", exc_info=exc, extra={"error_code": "internal_error"})
    return _error_response(request, 500, "internal_error", "Unexpected error")
