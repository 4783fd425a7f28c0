"""Uniform async HTTP client for third-party APIs.

One ``UpstreamClient`` per upstream, parameterised by an ``UpstreamSpec``
(base URL, auth headers, default timeout). Failures are returned as
``UpstreamError`` values inside the result, never raised, so callers decide
whether a failure becomes the response.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from gateway.errors import UpstreamError, UpstreamErrorKind
from gateway.resilience.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

USER_AGENT = "integration-gateway/1.0"


@dataclass
class UpstreamSpec:
    """Static description of one upstream API."""

    name: str
    base_url: str
    auth_headers: Callable[[], dict[str, str]] = dict
    default_headers: dict[str, str] = field(default_factory=dict)
    timeout: float = 10.0
    # (env var name, present?) pairs checked before any network call
    required: Callable[[], list[tuple[str, bool]]] = list

    def missing_config(self) -> str | None:
        """Name of the first missing setting, or None when fully configured."""
        for env_name, present in self.required():
            if not present:
                return env_name
        return None


@dataclass
class UpstreamResult:
    ok: bool
    status: int | None = None
    data: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    error: UpstreamError | None = None
    elapsed_ms: float = 0.0

    def raise_for_error(self) -> UpstreamResult:
        if self.error is not None:
            raise self.error
        return self


def _decode(response: httpx.Response) -> Any:
    """JSON when possible, raw text otherwise; upstreams are not always JSON-clean."""
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return response.text


class UpstreamClient:
    """Breaker-guarded HTTP client for a single upstream."""

    def __init__(
        self,
        spec: UpstreamSpec,
        breaker: CircuitBreaker,
        http: httpx.AsyncClient,
    ) -> None:
        self.spec = spec
        self.breaker = breaker
        self._http = http

    @property
    def name(self) -> str:
        return self.spec.name

    def missing_config(self) -> str | None:
        return self.spec.missing_config()

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.spec.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def call(
        self,
        path: str,
        method: str = "GET",
        *,
        headers: dict[str, str] | None = None,
        body: Any = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> UpstreamResult:
        """Send one request and normalise the outcome.

        ``path`` may be absolute, for APIs that hand back per-resource hosts.
        """
        missing = self.missing_config()
        if missing:
            return UpstreamResult(
                ok=False,
                error=UpstreamError(
                    UpstreamErrorKind.NOT_CONFIGURED, self.name, f"{missing} not configured"
                ),
            )

        if not self.breaker.allow_request():
            logger.warning("Circuit open for %s, rejecting %s %s", self.name, method, path)
            return UpstreamResult(
                ok=False,
                error=UpstreamError(
                    UpstreamErrorKind.CIRCUIT_OPEN, self.name, f"Circuit open for {self.name}"
                ),
            )

        request_headers = {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            **self.spec.default_headers,
            **self.spec.auth_headers(),
            **(headers or {}),
        }
        url = self._url(path)
        started = time.perf_counter()
        try:
            response = await self._http.request(
                method,
                url,
                headers=request_headers,
                json=body,
                params={k: v for k, v in (params or {}).items() if v is not None},
                timeout=timeout if timeout is not None else self.spec.timeout,
            )
        except httpx.TimeoutException as exc:
            self.breaker.record_failure(timeout=True)
            logger.warning("Upstream %s timed out: %s %s", self.name, method, path)
            return UpstreamResult(
                ok=False,
                error=UpstreamError(
                    UpstreamErrorKind.TIMEOUT, self.name, f"Request timeout: {type(exc).__name__}"
                ),
                elapsed_ms=_elapsed(started),
            )
        except httpx.HTTPError as exc:
            self.breaker.record_failure()
            logger.warning("Upstream %s connection error: %s", self.name, exc)
            return UpstreamResult(
                ok=False,
                error=UpstreamError(
                    UpstreamErrorKind.NETWORK, self.name, f"{self.name} connection error: {exc}"
                ),
                elapsed_ms=_elapsed(started),
            )
        except BaseException:
            # Cancelled or crashed mid-flight: record it so a half-open trial slot is released.
            self.breaker.record_failure()
            logger.warning("Upstream %s call aborted: %s %s", self.name, method, path)
            raise

        data = _decode(response)
        result_headers = dict(response.headers)
        elapsed_ms = _elapsed(started)
        logger.debug(
            "Upstream %s %s %s -> %s (%.1f ms)", self.name, method, path, response.status_code, elapsed_ms
        )

        if response.is_success:
            self.breaker.record_success()
            return UpstreamResult(
                ok=True, status=response.status_code, data=data, headers=result_headers, elapsed_ms=elapsed_ms
            )

        error = UpstreamError(
            UpstreamErrorKind.HTTP_STATUS,
            self.name,
            f"{self.name} API error: {response.status_code}",
            status=response.status_code,
            body=data,
            headers=result_headers,
        )
        if error.counts_as_failure:
            self.breaker.record_failure()
        else:
            self.breaker.record_success()
        return UpstreamResult(
            ok=False,
            status=response.status_code,
            data=data,
            headers=result_headers,
            error=error,
            elapsed_ms=elapsed_ms,
        )


def _elapsed(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
