"""Built-in connectivity probes.

Each probe checks its own configuration before touching the network and
reports a short summary of what the upstream returned.
"""

from __future__ import annotations

import json
import logging
import re

import redis.asyncio as redis_asyncio

from gateway.config import GatewaySettings
from gateway.errors import UpstreamError, UpstreamErrorKind
from gateway.probes.registry import ProbeRegistry, ProbeResult
from gateway.upstream.client import UpstreamClient
from gateway.upstream.providers import ANTHROPIC, GHL, OPENAI, PINECONE, WOOCOMMERCE

logger = logging.getLogger(__name__)

_LABELS = {
    GHL: "GHL",
    OPENAI: "OpenAI",
    ANTHROPIC: "Anthropic",
    PINECONE: "Pinecone",
    WOOCOMMERCE: "WooCommerce",
}


def describe_error(error: UpstreamError) -> str:
    """Human-readable probe error for an upstream failure."""
    label = _LABELS.get(error.upstream, error.upstream)
    if error.kind == UpstreamErrorKind.HTTP_STATUS:
        body = error.body if isinstance(error.body, str) else json.dumps(error.body)
        return f"{label} API error: {error.status} - {body}"
    if error.kind == UpstreamErrorKind.NOT_CONFIGURED:
        return error.message
    return f"{label} connection error: {error.message}"


def mask_uri(uri: str) -> str:
    """Hide the password part of a connection URI."""
    return re.sub(r":[^:@/]+@", ":****@", uri)


async def check_mongodb(settings: GatewaySettings) -> ProbeResult:
    """Configuration-only check; the gateway holds no database driver."""
    if not settings.mongodb_uri:
        return ProbeResult.fail("MONGODB_URI not configured")
    uri = settings.mongodb_uri
    return ProbeResult.ok(
        {
            "configured": True,
            "uri_pattern": mask_uri(uri),
            "is_atlas": "mongodb.net" in uri or uri.startswith("mongodb+srv"),
            "database": settings.mongodb_database,
            "note": "Connection is not opened; URI inspected only",
        }
    )


async def check_ghl(settings: GatewaySettings, client: UpstreamClient) -> ProbeResult:
    result = await client.call(f"/locations/{settings.ghl_location_id}")
    if not result.ok:
        return ProbeResult.fail(describe_error(result.error))
    data = result.data if isinstance(result.data, dict) else {}
    location = data.get("location", data)
    return ProbeResult.ok(
        {
            "location_id": settings.ghl_location_id,
            "name": location.get("name") or "Location found",
            "email": location.get("email"),
            "phone": location.get("phone"),
            "api_version": settings.ghl_api_version,
        }
    )


async def check_openai(client: UpstreamClient) -> ProbeResult:
    result = await client.call("/v1/models")
    if not result.ok:
        return ProbeResult.fail(describe_error(result.error))
    models = result.data.get("data", []) if isinstance(result.data, dict) else []
    ids = [m.get("id", "") for m in models]
    return ProbeResult.ok(
        {
            "connected": True,
            "total_models": len(models),
            "gpt_models": [i for i in ids if "gpt" in i][:5],
            "embedding_models": sum(1 for i in ids if "embedding" in i),
            "api_version": "v1",
        }
    )


async def check_anthropic(settings: GatewaySettings, client: UpstreamClient) -> ProbeResult:
    result = await client.call(
        "/v1/messages",
        "POST",
        body={
            "model": settings.anthropic_model,
            "messages": [{"role": "user", "content": 'Say "API test successful" in 5 words or less.'}],
            "max_tokens": 20,
        },
        timeout=max(client.spec.timeout, 15.0),
    )
    if not result.ok:
        return ProbeResult.fail(describe_error(result.error))
    data = result.data if isinstance(result.data, dict) else {}
    content = data.get("content") or [{}]
    return ProbeResult.ok(
        {
            "connected": True,
            "model": settings.anthropic_model,
            "response": content[0].get("text") or "Connected",
            "usage": data.get("usage"),
            "api_version": settings.anthropic_version,
        }
    )


async def check_pinecone(settings: GatewaySettings, client: UpstreamClient) -> ProbeResult:
    listing = await client.call("/indexes")
    if not listing.ok:
        return ProbeResult.fail(describe_error(listing.error))
    indexes = listing.data.get("indexes", []) if isinstance(listing.data, dict) else []
    target = next((i for i in indexes if i.get("name") == settings.pinecone_index_name), None)
    if target is None:
        available = ", ".join(i.get("name", "") for i in indexes)
        return ProbeResult.fail(
            f"Index '{settings.pinecone_index_name}' not found. Available indexes: {available}"
        )

    stats = await client.call(f"https://{target['host']}/describe_index_stats")
    stats_data = stats.data if stats.ok and isinstance(stats.data, dict) else {}
    return ProbeResult.ok(
        {
            "connected": True,
            "index_name": settings.pinecone_index_name,
            "environment": target.get("environment") or settings.pinecone_environment,
            "dimension": target.get("dimension"),
            "host": target.get("host"),
            "ready": (target.get("status") or {}).get("ready", target.get("ready")),
            "vector_count": stats_data.get("totalVectorCount", 0),
            "namespaces": list((stats_data.get("namespaces") or {}).keys()),
        }
    )


async def check_woocommerce(settings: GatewaySettings, client: UpstreamClient) -> ProbeResult:
    result = await client.call("/system_status", timeout=max(client.spec.timeout, 15.0))
    if result.ok:
        data = result.data if isinstance(result.data, dict) else {}
        environment = data.get("environment") or {}
        return ProbeResult.ok(
            {
                "connected": True,
                "store_name": environment.get("site_name") or "Connected",
                "wc_version": environment.get("version"),
                "currency": (data.get("settings") or {}).get("currency"),
                "api_url": settings.wc_api_url,
                "active_plugins": len(data.get("active_plugins") or []),
            }
        )
    if result.error.kind in (UpstreamErrorKind.NOT_CONFIGURED, UpstreamErrorKind.CIRCUIT_OPEN):
        return ProbeResult.fail(describe_error(result.error))
    if result.status == 401:
        return ProbeResult.fail("WooCommerce authentication failed. Check consumer key and secret.")

    # system_status needs admin scope; the products listing does not.
    fallback = await client.call("/products", params={"per_page": 1})
    if not fallback.ok:
        return ProbeResult.fail(describe_error(fallback.error))
    total = {k.lower(): v for k, v in fallback.headers.items()}.get("x-wp-total", "0")
    return ProbeResult.ok(
        {
            "connected": True,
            "api_url": settings.wc_api_url,
            "total_products": int(total) if str(total).isdigit() else 0,
            "note": "Connected via products endpoint",
        }
    )


async def check_redis(settings: GatewaySettings) -> ProbeResult:
    if not settings.redis_url:
        return ProbeResult.fail("REDIS_URL not configured")
    client = redis_asyncio.from_url(settings.redis_url, socket_connect_timeout=5)
    try:
        pong = await client.ping()
    except Exception as exc:
        return ProbeResult.fail(f"Redis connection error: {exc}")
    finally:
        await client.aclose()
    return ProbeResult.ok({"connected": bool(pong), "url": mask_uri(settings.redis_url)})


def build_probe_registry(settings: GatewaySettings, clients: dict[str, UpstreamClient]) -> ProbeRegistry:
    """Registry with every built-in probe bound to its settings and client."""

    async def _config_first(name: str, run):
        # Configuration problems short-circuit before any network call.
        missing = clients[name].missing_config()
        if missing:
            return ProbeResult.fail(f"{missing} not configured")
        return await run()

    registry = ProbeRegistry(timeout=settings.probe_timeout_seconds)
    registry.register("mongodb", lambda: check_mongodb(settings))
    registry.register(GHL, lambda: _config_first(GHL, lambda: check_ghl(settings, clients[GHL])))
    registry.register(OPENAI, lambda: _config_first(OPENAI, lambda: check_openai(clients[OPENAI])))
    registry.register(
        ANTHROPIC, lambda: _config_first(ANTHROPIC, lambda: check_anthropic(settings, clients[ANTHROPIC]))
    )
    registry.register(
        PINECONE, lambda: _config_first(PINECONE, lambda: check_pinecone(settings, clients[PINECONE]))
    )
    registry.register(
        WOOCOMMERCE,
        lambda: _config_first(WOOCOMMERCE, lambda: check_woocommerce(settings, clients[WOOCOMMERCE])),
    )
    registry.register("redis", lambda: check_redis(settings))
    return registry
