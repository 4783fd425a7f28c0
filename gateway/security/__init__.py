"""Inbound request protection: API keys, rate limits, headers, body cap."""

from gateway.security.auth import require_api_key
from gateway.security.middleware import install_security_middleware, read_body_capped
from gateway.security.rate_limit import RequestRateLimiter

__all__ = ["RequestRateLimiter", "install_security_middleware", "read_body_capped", "require_api_key"]
