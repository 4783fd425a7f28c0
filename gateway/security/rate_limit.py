"""Per-client request admission using ``limits`` moving windows.

Only ``/api`` paths are limited; webhooks get their own, larger budget.
Storage goes through the asyncio API so a Redis-backed window never blocks
the event loop.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.aio.strategies import MovingWindowRateLimiter
from limits.storage import storage_from_string

from gateway.config import GatewaySettings

logger = logging.getLogger(__name__)

LIMITED_PREFIX = "/api"
WEBHOOK_PREFIX = "/api/webhooks"
ASYNC_SCHEME = "async+"


def async_storage_uri(uri: str) -> str:
    """``redis://host`` -> ``async+redis://host``; already-async URIs pass through."""
    return uri if uri.startswith(ASYNC_SCHEME) else ASYNC_SCHEME + uri


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int = 0


class RequestRateLimiter:
    def __init__(
        self,
        *,
        window_seconds: int = 60,
        max_requests: int = 100,
        webhook_max_requests: int = 1000,
        storage_uri: str = "async+memory://",
        enabled: bool = True,
    ) -> None:
        self.enabled = enabled
        self.storage = storage_from_string(async_storage_uri(storage_uri))
        self._limiter = MovingWindowRateLimiter(self.storage)
        self._default = RateLimitItemPerSecond(max_requests, window_seconds)
        self._webhooks = RateLimitItemPerSecond(webhook_max_requests, window_seconds)

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> RequestRateLimiter:
        return cls(
            window_seconds=settings.rate_limit_window_seconds,
            max_requests=settings.rate_limit_max_requests,
            webhook_max_requests=settings.rate_limit_webhook_max_requests,
            storage_uri=settings.rate_limit_storage_uri,
            enabled=settings.rate_limit_enabled,
        )

    def _item_for(self, path: str) -> RateLimitItem | None:
        if path.startswith(WEBHOOK_PREFIX):
            return self._webhooks
        if path.startswith(LIMITED_PREFIX):
            return self._default
        return None

    async def check(self, client_key: str, path: str) -> RateDecision | None:
        """Consume one request for ``client_key``; None when the path is not limited."""
        item = self._item_for(path)
        if not self.enabled or item is None:
            return None
        scope = "webhooks" if item is self._webhooks else "api"
        allowed = await self._limiter.hit(item, scope, client_key)
        stats = await self._limiter.get_window_stats(item, scope, client_key)
        if allowed:
            return RateDecision(True, item.amount, stats.remaining)
        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        logger.warning("Rate limit exceeded for %s on %s", client_key, path)
        return RateDecision(False, item.amount, 0, retry_after)
