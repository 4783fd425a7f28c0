"""Explicit registry of the objects a running gateway shares across requests.

Built once in ``create_app`` and stored on ``app.state.gateway``; handlers
reach it through ``request.app.state.gateway``. There are no module-level
singletons.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

import httpx

from gateway.config import GatewaySettings
from gateway.inventory import Inventory
from gateway.probes.checks import build_probe_registry
from gateway.probes.registry import ProbeRegistry
from gateway.resilience.circuit_breaker import CircuitBreakerRegistry
from gateway.routing import RouteDispatcher
from gateway.security.rate_limit import RequestRateLimiter
from gateway.upstream.client import UpstreamClient
from gateway.upstream.providers import build_clients
from gateway.webhooks.verifier import WebhookVerifier

logger = logging.getLogger(__name__)


@dataclass
class GatewayContext:
    settings: GatewaySettings
    breakers: CircuitBreakerRegistry
    http: httpx.AsyncClient
    clients: dict[str, UpstreamClient]
    probes: ProbeRegistry
    verifier: WebhookVerifier
    inventory: Inventory
    rate_limiter: RequestRateLimiter
    dispatcher: RouteDispatcher | None = None
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def build(
        cls,
        settings: GatewaySettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> GatewayContext:
        """Wire every component from ``settings``.

        ``transport`` replaces the network for all upstream calls (tests).
        """
        breakers = CircuitBreakerRegistry.from_settings(settings)
        http = httpx.AsyncClient(transport=transport, follow_redirects=True)
        clients = build_clients(settings, breakers, http)
        context = cls(
            settings=settings,
            breakers=breakers,
            http=http,
            clients=clients,
            probes=build_probe_registry(settings, clients),
            verifier=WebhookVerifier.from_settings(settings),
            inventory=Inventory(),
            rate_limiter=RequestRateLimiter.from_settings(settings),
        )
        logger.info(
            "Gateway context built: upstreams=%s, probes=%s",
            sorted(clients),
            context.probes.names(),
        )
        return context

    def client(self, name: str) -> UpstreamClient:
        return self.clients[name]

    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    async def aclose(self) -> None:
        await self.http.aclose()
        logger.info("Upstream HTTP client closed")
