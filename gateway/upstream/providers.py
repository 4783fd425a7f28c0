"""Per-upstream configuration: base URL, auth scheme, required credentials.

Each provider is data, not a class: the same ``UpstreamClient`` serves all
of them.
"""

from __future__ import annotations

import base64

import httpx

from gateway.config import GatewaySettings
from gateway.resilience.circuit_breaker import CircuitBreakerRegistry
from gateway.upstream.client import UpstreamClient, UpstreamSpec

GHL = "ghl"
OPENAI = "openai"
ANTHROPIC = "anthropic"
PINECONE = "pinecone"
WOOCOMMERCE = "woocommerce"

UPSTREAM_NAMES = (GHL, OPENAI, ANTHROPIC, PINECONE, WOOCOMMERCE)


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _basic(user: str, password: str) -> dict[str, str]:
    raw = f"{user}:{password}".encode()
    return {"Authorization": f"Basic {base64.b64encode(raw).decode()}"}


def build_specs(settings: GatewaySettings) -> dict[str, UpstreamSpec]:
    """Upstream specs for every supported provider."""
    timeout = settings.upstream_timeout
    specs = [
        UpstreamSpec(
            name=GHL,
            base_url=settings.ghl_base_url,
            auth_headers=lambda: _bearer(settings.ghl_api_key),
            default_headers={"Version": settings.ghl_api_version},
            timeout=timeout,
            required=lambda: [
                ("GHL_API_KEY", bool(settings.ghl_api_key)),
                ("GHL_LOCATION_ID", bool(settings.ghl_location_id)),
            ],
        ),
        UpstreamSpec(
            name=OPENAI,
            base_url=settings.openai_base_url,
            auth_headers=lambda: _bearer(settings.openai_api_key),
            timeout=timeout,
            required=lambda: [("OPENAI_API_KEY", bool(settings.openai_api_key))],
        ),
        UpstreamSpec(
            name=ANTHROPIC,
            base_url=settings.anthropic_base_url,
            auth_headers=lambda: {"x-api-key": settings.anthropic_api_key},
            default_headers={"anthropic-version": settings.anthropic_version},
            timeout=timeout,
            required=lambda: [("ANTHROPIC_API_KEY", bool(settings.anthropic_api_key))],
        ),
        UpstreamSpec(
            name=PINECONE,
            base_url=settings.pinecone_control_url,
            auth_headers=lambda: {"Api-Key": settings.pinecone_api_key},
            timeout=timeout,
            required=lambda: [("PINECONE_API_KEY", bool(settings.pinecone_api_key))],
        ),
        UpstreamSpec(
            name=WOOCOMMERCE,
            base_url=settings.wc_api_url,
            auth_headers=lambda: _basic(settings.wc_consumer_key, settings.wc_consumer_secret),
            timeout=timeout,
            required=lambda: [
                ("WC_CONSUMER_KEY", bool(settings.wc_consumer_key)),
                ("WC_CONSUMER_SECRET", bool(settings.wc_consumer_secret)),
            ],
        ),
    ]
    return {spec.name: spec for spec in specs}


def build_clients(
    settings: GatewaySettings,
    breakers: CircuitBreakerRegistry,
    http: httpx.AsyncClient,
) -> dict[str, UpstreamClient]:
    """One breaker-guarded client per upstream, sharing one connection pool."""
    return {
        name: UpstreamClient(spec, breakers.get(name), http)
        for name, spec in build_specs(settings).items()
    }
