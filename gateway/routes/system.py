"""Service index, health, metrics and per-upstream connectivity tests."""

from __future__ import annotations

import logging
import os
import platform
import resource
import threading
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from gateway import __version__
from gateway.logging_config import SERVICE_NAME
from gateway.resilience.health import build_health_report
from gateway.security.auth import require_api_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def process_metrics(uptime: float) -> dict:
    usage = resource.getrusage(resource.RUSAGE_SELF)
    return {
        "pid": os.getpid(),
        "uptime": round(uptime, 3),
        "python": platform.python_version(),
        "threads": threading.active_count(),
        "cpu": {
            "process_time": round(time.process_time(), 4),
            "user": round(usage.ru_utime, 4),
            "system": round(usage.ru_stime, 4),
        },
        # ru_maxrss is reported in kilobytes on Linux
        "memory": {"max_rss_kb": usage.ru_maxrss},
    }


@router.get("/")
async def root(request: Request):
    """Service index."""
    gateway = request.app.state.gateway
    return JSONResponse(
        {
            "service": SERVICE_NAME,
            "version": __version__,
            "environment": gateway.settings.app_env,
            "endpoints": gateway.dispatcher.known_endpoints() if gateway.dispatcher else [],
        }
    )


@router.get("/health")
async def health(request: Request):
    """Healthy unless a circuit breaker is open."""
    gateway = request.app.state.gateway
    report, status_code = build_health_report(
        gateway.breakers,
        uptime=gateway.uptime(),
        version=__version__,
        environment=gateway.settings.app_env,
    )
    return JSONResponse(report, status_code=status_code)


@router.get("/metrics")
async def metrics(request: Request, key_prefix: str = Depends(require_api_key)):
    gateway = request.app.state.gateway
    logger.info("Metrics requested by key %s...", key_prefix)
    return JSONResponse(
        {
            "timestamp": _now(),
            "circuit_breakers": gateway.breakers.snapshots(),
            "process": process_metrics(gateway.uptime()),
        }
    )


@router.get("/api/test/{probe_name}")
async def test_upstream(request: Request, probe_name: str):
    """Run one connectivity probe on demand."""
    result = await request.app.state.gateway.probes.probe(probe_name)
    body = {"service": probe_name, **result.as_dict(), "timestamp": _now()}
    return JSONResponse(body, status_code=200 if result.success else 500)
