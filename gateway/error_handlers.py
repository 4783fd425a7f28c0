"""Central exception handlers: every failure becomes a categorised JSON response."""

from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway.errors import (
    STATUS_CODES,
    USER_MESSAGES,
    AppError,
    ErrorCategory,
    ErrorInfo,
    UpstreamError,
    build_error_payload,
    categorize_exception,
)
from gateway.logging_config import get_correlation_id, redact

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}

# Later entries win, so 500 maps to INTERNAL rather than DATABASE.
_CATEGORY_BY_STATUS = {status: category for category, status in STATUS_CODES.items()}


def _include_details(request: Request) -> bool:
    gateway = getattr(request.app.state, "gateway", None)
    return gateway is not None and not gateway.settings.is_production


def error_response(
    request: Request,
    exc: BaseException,
    info: ErrorInfo | None = None,
    **extra,
) -> JSONResponse:
    """Log ``exc`` at a level matching its status and render the error body."""
    info = info or categorize_exception(exc)
    error_id = str(uuid.uuid4())
    log_data = {
        "error_id": error_id,
        "path": request.url.path,
        "method": request.method,
        "category": info.category.value,
        "status_code": info.status_code,
        "correlation_id": get_correlation_id(),
        "client_ip": request.client.host if request.client else None,
    }
    if info.status_code >= 500:
        logger.error("Request failed with server error: %s", exc, extra=log_data, exc_info=exc)
    elif info.status_code >= 400:
        logger.warning("Request failed with client error: %s", exc, extra=log_data)
    else:
        logger.info("Request failed: %s", exc, extra=log_data)

    payload = build_error_payload(exc, info, include_details=_include_details(request), error_id=error_id)
    payload.update(extra)
    headers = {**SECURITY_HEADERS, "X-Error-Id": error_id}
    if info.retry_after is not None:
        headers["Retry-After"] = str(info.retry_after)
    return JSONResponse(payload, status_code=info.status_code, headers=headers)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return error_response(request, exc)


async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    return error_response(request, exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    if isinstance(exc.body, (dict, list)):
        logger.info("Rejected request body: %s", redact(exc.body))
    info = ErrorInfo(
        ErrorCategory.VALIDATION,
        400,
        USER_MESSAGES[ErrorCategory.VALIDATION],
        {"fields": fields},
    )
    return error_response(request, exc, info)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # 405 is reported as 404: an unknown method+path combination is simply not found.
    if exc.status_code in (404, 405):
        dispatcher = request.app.state.gateway.dispatcher
        info = ErrorInfo(
            ErrorCategory.NOT_FOUND,
            404,
            f"Route not found: {request.method} {request.url.path}",
        )
        return error_response(
            request,
            exc,
            info,
            path=request.url.path,
            method=request.method,
            endpoints=dispatcher.known_endpoints() if dispatcher else [],
        )
    category = _CATEGORY_BY_STATUS.get(exc.status_code, ErrorCategory.INTERNAL)
    info = ErrorInfo(category, exc.status_code, str(exc.detail) or USER_MESSAGES[category])
    return error_response(request, exc, info)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return error_response(request, exc)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(UpstreamError, upstream_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
