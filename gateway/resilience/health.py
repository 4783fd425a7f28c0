"""Service health report.

Health reflects the gateway's own view of its upstreams: any open circuit
breaker marks the service degraded. No upstream is called from here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from gateway.resilience.circuit_breaker import CircuitBreakerRegistry

logger = logging.getLogger(__name__)


def breaker_states(breakers: CircuitBreakerRegistry) -> dict[str, str]:
    return breakers.get_all_states()


def build_health_report(
    breakers: CircuitBreakerRegistry,
    *,
    uptime: float,
    version: str,
    environment: str,
) -> tuple[dict, int]:
    """Return the health body and its HTTP status (200 healthy, 503 degraded)."""
    states = breaker_states(breakers)
    degraded = any(state == "open" for state in states.values())
    report = {
        "status": "degraded" if degraded else "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(uptime, 3),
        "version": version,
        "environment": environment,
        "circuit_breakers": states,
    }
    if degraded:
        logger.warning("Health degraded, open circuits: %s", [n for n, s in states.items() if s == "open"])
    return report, 503 if degraded else 200
