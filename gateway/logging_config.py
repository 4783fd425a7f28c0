"""Structured logging: JSON records, correlation ids, rotating files, audit trail.

Usage:
    configure_logging(settings)          # once, at app creation
    logger = logging.getLogger(__name__) # everywhere else
    audit_log("webhook_received", provider="ghl")
"""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar, Token
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from gateway.config import GatewaySettings

SERVICE_NAME = "integration-gateway"

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

audit_logger = logging.getLogger("gateway.audit")

SENSITIVE_FIELDS = frozenset({"password", "token", "apiKey", "api_key", "secret", "creditCard"})


def get_correlation_id() -> str:
    return _correlation_id.get()


def set_correlation_id(value: str | None = None) -> Token[str]:
    """Bind a correlation id to the current context (generates one if missing)."""
    return _correlation_id.set(value or uuid.uuid4().hex)


def reset_correlation_id(token: Token[str]) -> None:
    _correlation_id.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Stamp every record with the service name and current correlation id."""

    def __init__(self, service_name: str, environment: str) -> None:
        super().__init__()
        self._service_name = service_name
        self._environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        record.service = self._service_name
        record.environment = self._environment
        return True


def _formatter() -> JsonFormatter:
    return JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s %(correlation_id)s %(service)s %(environment)s",
        rename_fields={"levelname": "level", "name": "logger", "asctime": "timestamp"},
    )


def configure_logging(settings: GatewaySettings) -> None:
    """Install JSON handlers on the root logger, replacing any existing ones.

    Console output always; ``gateway.log`` and ``error.log`` rotating files
    when ``LOG_DIR`` is set.
    """
    level = settings.log_level.upper()
    log_filter = CorrelationIdFilter(SERVICE_NAME, settings.app_env)
    formatter = _formatter()

    console = logging.StreamHandler()
    handlers: list[logging.Handler] = [console]

    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        combined = RotatingFileHandler(
            log_dir / "gateway.log",
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        errors = RotatingFileHandler(
            log_dir / "error.log",
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        errors.setLevel(logging.ERROR)
        handlers.extend([combined, errors])

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(log_filter)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = handlers


def redact(payload: Any) -> Any:
    """Copy of ``payload`` with sensitive fields masked, for logging only."""
    if isinstance(payload, dict):
        return {
            k: "[REDACTED]" if k in SENSITIVE_FIELDS and v else redact(v)
            for k, v in payload.items()
        }
    if isinstance(payload, list):
        return [redact(v) for v in payload]
    return payload


def audit_log(event: str, **fields: Any) -> None:
    """Record a security-relevant event on the audit logger."""
    audit_logger.info("AUDIT %s", event, extra={"audit_event": event, **redact(fields)})
