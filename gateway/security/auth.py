"""API key authentication for operational endpoints.

Auth contract:
- Transport: ``x-api-key`` header, or ``apiKey`` query parameter
- Valid keys: INTERNAL_API_KEY, EXTERNAL_API_KEY (either may be unset)
- Public: health, probes, CRM proxy, inventory; webhooks are signature-verified instead
- Rejection: 401 missing or unknown key
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Request

from gateway.errors import AuthenticationError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
API_KEY_QUERY = "apiKey"


def extract_api_key(request: Request) -> str | None:
    """API key from header or query string; None when absent or blank."""
    value = request.headers.get(API_KEY_HEADER) or request.query_params.get(API_KEY_QUERY)
    if not value or not value.strip():
        return None
    return value.strip()


def is_valid_api_key(candidate: str, valid_keys: tuple[str, ...]) -> bool:
    # Compare against every key so timing does not reveal which one matched.
    matched = False
    for key in valid_keys:
        if hmac.compare_digest(candidate.encode("utf-8"), key.encode("utf-8")):
            matched = True
    return matched


async def require_api_key(request: Request) -> str:
    """FastAPI dependency: reject the request unless it carries a valid API key.

    Returns the first 8 characters of the key, for logging.
    """
    api_key = extract_api_key(request)
    if api_key is None:
        raise AuthenticationError("Missing API key", user_message="Missing API key")
    valid_keys = request.app.state.gateway.settings.api_keys
    if not valid_keys or not is_valid_api_key(api_key, valid_keys):
        logger.warning("Invalid API key attempt: %s...", api_key[:8])
        raise AuthenticationError("Invalid API key", user_message="Invalid API key")
    return api_key[:8]
