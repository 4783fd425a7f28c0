"""Tests for settings loading and structured logging."""

from __future__ import annotations

import json
import logging

from gateway.config import GatewaySettings
from gateway.logging_config import (
    CorrelationIdFilter,
    _formatter,
    configure_logging,
    get_correlation_id,
    redact,
    reset_correlation_id,
    set_correlation_id,
)


class TestSettings:
    def test_defaults(self):
        settings = GatewaySettings(_env_file=None)
        assert settings.port == 3000
        assert settings.circuit_breaker_timeout == 3000
        assert settings.circuit_breaker_error_threshold == 50
        assert settings.circuit_breaker_reset_timeout == 30000
        assert settings.rate_limit_window_seconds == 60
        assert settings.rate_limit_max_requests == 100
        assert settings.rate_limit_webhook_max_requests == 1000
        assert settings.upstream_timeout == 3.0
        assert settings.is_production is False
        assert settings.api_keys == ()

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("GHL_API_KEY", "from-env")
        monkeypatch.setenv("APP_ENV", "production")
        monkeypatch.setenv("WEBHOOK_SKIP_VERIFICATION", "true")
        settings = GatewaySettings(_env_file=None)
        assert settings.ghl_api_key == "from-env"
        assert settings.is_production is True
        assert settings.webhook_skip_verification is True

    def test_aliases(self, monkeypatch):
        monkeypatch.setenv("CLAUDE_API_KEY", "claude-key")
        monkeypatch.setenv("PINECONE_INDEX", "alt-index")
        monkeypatch.setenv("ENVIRONMENT", "staging")
        settings = GatewaySettings(_env_file=None)
        assert settings.anthropic_api_key == "claude-key"
        assert settings.pinecone_index_name == "alt-index"
        assert settings.app_env == "staging"

    def test_api_keys(self, monkeypatch):
        monkeypatch.setenv("INTERNAL_API_KEY", "a")
        monkeypatch.setenv("EXTERNAL_API_KEY", "b")
        assert GatewaySettings(_env_file=None).api_keys == ("a", "b")

    def test_host_overrides_cleared(self, monkeypatch, clear_gateway_env, settings_factory):
        monkeypatch.setenv("ANTHROPIC_BASE_URL", "http://127.0.0.1:48271")
        monkeypatch.setenv("ANTHROPIC_MODEL", "claude-from-shell")
        monkeypatch.setenv("pinecone_index", "shell-index")
        monkeypatch.setenv("PINECONE_CONTROL_URL", "http://127.0.0.1:9")
        clear_gateway_env()
        settings = settings_factory()
        fields = GatewaySettings.model_fields
        assert settings.anthropic_base_url == fields["anthropic_base_url"].default
        assert settings.anthropic_model == fields["anthropic_model"].default
        assert settings.pinecone_index_name == fields["pinecone_index_name"].default
        assert settings.pinecone_control_url == fields["pinecone_control_url"].default

    def test_configured_env_never_exposes_values(self, settings):
        configured = settings.configured_env()
        assert configured["GHL_API_KEY"] is True
        assert configured["REDIS_URL"] is False
        assert all(isinstance(v, bool) for v in configured.values())


class TestLogging:
    def test_redact_nested(self):
        payload = {"email": "a@b.c", "password": "pw", "nested": [{"apiKey": "k", "ok": 1}], "token": ""}
        assert redact(payload) == {
            "email": "a@b.c",
            "password": "[REDACTED]",
            "nested": [{"apiKey": "[REDACTED]", "ok": 1}],
            "token": "",
        }

    def test_correlation_id_context(self):
        token = set_correlation_id("abc")
        try:
            assert get_correlation_id() == "abc"
        finally:
            reset_correlation_id(token)
        assert get_correlation_id() == ""

    def test_json_record_has_correlation_and_service(self):
        record = logging.LogRecord("gateway.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        token = set_correlation_id("cid-1")
        try:
            CorrelationIdFilter("integration-gateway", "test").filter(record)
        finally:
            reset_correlation_id(token)
        data = json.loads(_formatter().format(record))
        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["logger"] == "gateway.test"
        assert data["correlation_id"] == "cid-1"
        assert data["service"] == "integration-gateway"
        assert data["environment"] == "test"

    def test_configure_logging_writes_rotating_files(self, settings_factory, tmp_path):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(settings_factory(log_dir=str(tmp_path)))
            logging.getLogger("gateway.test").error("disk is full")
            for handler in root.handlers:
                handler.flush()
            assert "disk is full" in (tmp_path / "gateway.log").read_text()
            assert "disk is full" in (tmp_path / "error.log").read_text()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers = saved_handlers
            root.setLevel(saved_level)

    def test_info_not_in_error_log(self, settings_factory, tmp_path):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(settings_factory(log_dir=str(tmp_path)))
            logging.getLogger("gateway.test").info("routine")
            for handler in root.handlers:
                handler.flush()
            assert "routine" in (tmp_path / "gateway.log").read_text()
            assert "routine" not in (tmp_path / "error.log").read_text()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers = saved_handlers
            root.setLevel(saved_level)
