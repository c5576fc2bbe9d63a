"""
Standard response envelope.

Every API response, success or failure, has the same shape:

    {
        "success": true | false,
        "data": <payload> | null,
        "meta": {timestamp, request_id, version, endpoint, method, pagination?},
        "errors": null | [{code, message, field?, details?}, ...]
    }

build_envelope() is pure apart from reading the clock. The exception
handlers registered by register_exception_handlers() render AppError,
request validation failures, HTTPException and unexpected exceptions
through the same builder so no handler hand-rolls an error body.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from pto_access.platform.errors import AppError, AuthenticationError, generate_correlation_id

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "v1"

# HTTPException status -> envelope code for errors raised by the framework itself
HTTP_STATUS_CODES = {
    status.HTTP_400_BAD_REQUEST: "VALIDATION_ERROR",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHENTICATED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_429_TOO_MANY_REQUESTS: "RATE_LIMITED",
}


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class Pagination(BaseModel):
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    total_pages: int
    has_next: bool
    has_prev: bool


class ResponseMeta(BaseModel):
    timestamp: str
    request_id: str
    version: str = DEFAULT_API_VERSION
    endpoint: Optional[str] = None
    method: Optional[str] = None
    pagination: Optional[Pagination] = None


class StandardResponse(BaseModel):
    success: bool
    data: Any = None
    meta: ResponseMeta
    errors: Optional[List[ErrorDetail]] = None


ErrorLike = Union[AppError, ErrorDetail, Dict[str, Any]]


def _to_error_detail(error: ErrorLike) -> ErrorDetail:
    if isinstance(error, ErrorDetail):
        return error
    if isinstance(error, AppError):
        return ErrorDetail(**error.to_dict())
    return ErrorDetail(**error)


def build_envelope(
    data: Any = None,
    errors: Optional[Union[ErrorLike, Sequence[ErrorLike]]] = None,
    *,
    request_id: Optional[str] = None,
    endpoint: Optional[str] = None,
    method: Optional[str] = None,
    version: str = DEFAULT_API_VERSION,
    pagination: Optional[Pagination] = None,
    timestamp: Optional[datetime] = None,
) -> StandardResponse:
    """
    Build a StandardResponse.

    With errors: success=False, data=None and errors is a non-empty list.
    Without: success=True and errors=None.
    """
    if errors is not None and not isinstance(errors, (list, tuple)):
        errors = [errors]

    meta = ResponseMeta(
        timestamp=(timestamp or datetime.now(timezone.utc)).isoformat(),
        request_id=request_id or generate_correlation_id(),
        version=version,
        endpoint=endpoint,
        method=method,
        pagination=pagination,
    )

    if errors:
        return StandardResponse(
            success=False,
            data=None,
            meta=meta,
            errors=[_to_error_detail(e) for e in errors],
        )
    return StandardResponse(success=True, data=data, meta=meta, errors=None)


def paginate(items: Sequence[Any], page: int, limit: int, total: int) -> Tuple[List[Any], Pagination]:
    """Pair a page of items with its Pagination block."""
    total_pages = math.ceil(total / limit) if limit else 0
    return list(items), Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def request_id_for(request: Request) -> str:
    """The request id assigned by RequestIdMiddleware, or a fresh one."""
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = generate_correlation_id()
        request.state.request_id = request_id
    return request_id


def envelope_for_request(
    request: Request,
    data: Any = None,
    errors: Optional[Union[ErrorLike, Sequence[ErrorLike]]] = None,
    pagination: Optional[Pagination] = None,
    version: str = DEFAULT_API_VERSION,
) -> StandardResponse:
    return build_envelope(
        data,
        errors,
        request_id=request_id_for(request),
        endpoint=request.url.path,
        method=request.method,
        version=version,
        pagination=pagination,
    )


def _error_response(
    request: Request, status_code: int, errors: List[ErrorLike], headers: Optional[dict] = None
) -> JSONResponse:
    version = getattr(request.app.state, "api_version", DEFAULT_API_VERSION)
    envelope = envelope_for_request(request, errors=errors, version=version)
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(mode="json"),
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return _error_response(request, exc.status_code, [exc], headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append(
            ErrorDetail(
                code="VALIDATION_ERROR",
                message=error.get("msg", "Invalid value"),
                field=".".join(location) or None,
            )
        )
    if not errors:
        errors.append(ErrorDetail(code="VALIDATION_ERROR", message="Request validation failed"))
    return _error_response(request, status.HTTP_400_BAD_REQUEST, errors)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_STATUS_CODES.get(exc.status_code, "INTERNAL_SERVER_ERROR" if exc.status_code >= 500 else "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error_response(
        request,
        exc.status_code,
        [ErrorDetail(code=code, message=message)],
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "path": request.url.path,
            "error_type": type(exc).__name__,
        },
    )
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        [ErrorDetail(code="INTERNAL_SERVER_ERROR", message="An unexpected error occurred")],
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
