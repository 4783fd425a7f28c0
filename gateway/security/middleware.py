"""HTTP middleware: correlation ids, request logging, headers, body cap, rate limiting.

Installed once by ``install_security_middleware`` after all routes exist.
Starlette runs the last-added middleware first, so the order below reads
innermost to outermost.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from gateway.error_handlers import SECURITY_HEADERS, error_response
from gateway.errors import PayloadTooLargeError, RateLimitError
from gateway.logging_config import get_correlation_id, reset_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-Id"


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def read_body_capped(request: Request, limit: int) -> bytes:
    """Read the raw body, failing as soon as it grows past ``limit`` bytes.

    Covers chunked uploads that carry no Content-Length.
    """
    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise PayloadTooLargeError(size, limit)
        chunks.append(chunk)
    return b"".join(chunks)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject over-budget clients with 429 before any handler runs."""

    async def dispatch(self, request: Request, call_next):
        gateway = request.app.state.gateway
        if request.method == "OPTIONS":
            return await call_next(request)
        decision = await gateway.rate_limiter.check(client_key(request), request.url.path)
        if decision is not None and not decision.allowed:
            return error_response(request, RateLimitError(retry_after=decision.retry_after))
        response = await call_next(request)
        if decision is not None:
            response.headers["X-RateLimit-Limit"] = str(decision.limit)
            response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Refuse requests whose declared Content-Length exceeds the cap."""

    async def dispatch(self, request: Request, call_next):
        limit = request.app.state.gateway.settings.max_body_bytes
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > limit:
            return error_response(request, PayloadTooLargeError(int(declared), limit))
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to the request and log it on the way in and out."""

    async def dispatch(self, request: Request, call_next):
        token = set_correlation_id(request.headers.get(CORRELATION_HEADER))
        correlation_id = get_correlation_id()
        request.state.correlation_id = correlation_id
        started = time.perf_counter()
        logger.info(
            "Incoming request %s %s",
            request.method,
            request.url.path,
            extra={
                "method": request.method,
                "path": request.url.path,
                "client_ip": client_key(request),
                "user_agent": request.headers.get("user-agent", ""),
            },
        )
        try:
            response = await call_next(request)
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                level,
                "Request completed %s %s -> %s",
                request.method,
                request.url.path,
                response.status_code,
                extra={"status_code": response.status_code, "duration_ms": duration_ms},
            )
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            reset_correlation_id(token)


def install_security_middleware(app: FastAPI) -> None:
    """Add the gateway middleware stack to ``app``."""
    settings = app.state.gateway.settings
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(BodySizeLimitMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "x-api-key", CORRELATION_HEADER],
    )
    logger.info("Security middleware installed (CORS origins: %s)", settings.cors_origins)
