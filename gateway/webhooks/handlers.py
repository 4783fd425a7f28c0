"""Inbound webhook endpoint.

POST /api/webhooks/{provider} reads the raw body (capped), verifies its
signature against the provider's secret, records an audit entry and
acknowledges. Payload processing beyond receipt is out of scope.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from gateway.errors import AuthenticationError, ConflictError, NotFoundError
from gateway.logging_config import audit_log, get_correlation_id
from gateway.security.middleware import client_key, read_body_capped
from gateway.webhooks.verifier import VerificationOutcome

logger = logging.getLogger(__name__)

_REJECTION_MESSAGES = {
    VerificationOutcome.NOT_CONFIGURED: "Webhook secret not configured",
    VerificationOutcome.MISSING_SIGNATURE: "Missing webhook signature",
    VerificationOutcome.INVALID_SIGNATURE: "Invalid webhook signature",
}


def _event_type(provider: str, payload: object, request: Request) -> str | None:
    if provider == "woocommerce":
        return request.headers.get("x-wc-webhook-topic")
    if isinstance(payload, dict):
        return payload.get("type") or payload.get("event")
    return None


async def receive_webhook(request: Request, provider: str):
    gateway = request.app.state.gateway
    config = gateway.verifier.providers.get(provider)
    if config is None:
        raise NotFoundError(f"Unknown webhook provider: {provider}", user_message="Unknown webhook provider.")

    raw_body = await read_body_capped(request, gateway.settings.max_body_bytes)
    outcome = gateway.verifier.verify(config, raw_body, request.headers)
    audit_log(
        "webhook_received",
        provider=provider,
        outcome=outcome.value,
        correlation_id=get_correlation_id(),
        ip_address=client_key(request),
        user_agent=request.headers.get("user-agent", ""),
    )
    if outcome == VerificationOutcome.REPLAYED:
        raise ConflictError("Webhook already processed", user_message="Webhook already processed.")
    if not outcome.accepted:
        message = _REJECTION_MESSAGES[outcome]
        raise AuthenticationError(message, user_message=message)

    try:
        payload = json.loads(raw_body) if raw_body else {}
    except ValueError:
        payload = None
    event_type = _event_type(provider, payload, request)
    logger.info("Webhook %s received (event=%s, %d bytes)", provider, event_type, len(raw_body))
    return JSONResponse(
        {
            "success": True,
            "message": "Webhook received",
            "provider": provider,
            "event_type": event_type,
            "correlation_id": get_correlation_id(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


router = APIRouter(tags=["webhooks"])
router.add_api_route("/api/webhooks/{provider}", receive_webhook, methods=["POST"], name="receive_webhook")


def register_webhook_routes(app: FastAPI) -> None:
    """Register the signature-verified webhook receiver on the app."""
    app.include_router(router)
    logger.info("Webhook routes registered")
