"""Gateway configuration: upstream credentials, feature flags, limits.

Everything is read from the environment (and ``.env``) once, when the app is
created. Settings are never mutated at runtime.
"""

from __future__ import annotations

import logging

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

PLACEHOLDER_WEBHOOK_SECRET = "your-webhook-secret"


class GatewaySettings(BaseSettings):
    """Environment-driven settings for the integration gateway."""

    app_env: str = Field(default="development", validation_alias=AliasChoices("APP_ENV", "ENVIRONMENT"))
    host: str = "0.0.0.0"
    port: int = 3000
    testing: bool = False

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5

    # GoHighLevel CRM
    ghl_api_key: str = ""
    ghl_location_id: str = ""
    ghl_base_url: str = "https://services.leadconnectorhq.com"
    ghl_api_version: str = "2021-07-28"
    ghl_webhook_secret: str = ""

    # LLM providers
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com"
    anthropic_api_key: str = Field(
        default="", validation_alias=AliasChoices("ANTHROPIC_API_KEY", "CLAUDE_API_KEY")
    )
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_model: str = "claude-3-haiku-20240307"
    anthropic_version: str = "2023-06-01"

    # Pinecone vector search
    pinecone_api_key: str = ""
    pinecone_index_name: str = Field(
        default="innovativebiosci-rag",
        validation_alias=AliasChoices("PINECONE_INDEX_NAME", "PINECONE_INDEX"),
    )
    pinecone_environment: str = "us-east-1-aws"
    pinecone_control_url: str = "https://api.pinecone.io"

    # WooCommerce
    wc_consumer_key: str = ""
    wc_consumer_secret: str = ""
    wc_api_url: str = "https://innovativebiosci.com/wp-json/wc/v3"
    wc_webhook_secret: str = ""

    # Data stores (probed, never written)
    mongodb_uri: str = ""
    mongodb_database: str = "innovativebiosci"
    redis_url: str = ""

    # Inbound auth
    internal_api_key: str = ""
    external_api_key: str = ""

    # Webhooks
    webhook_skip_verification: bool = False
    webhook_replay_window_seconds: float = 300.0

    # Circuit breakers
    circuit_breaker_timeout: int = 3000  # ms, default upstream request timeout
    circuit_breaker_error_threshold: int = 50  # percent
    circuit_breaker_reset_timeout: int = 30000  # ms
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_volume_threshold: int = 10
    circuit_breaker_rolling_window: float = 10.0  # seconds

    probe_timeout_seconds: float = 20.0

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_window_seconds: int = 60
    rate_limit_max_requests: int = 100
    rate_limit_webhook_max_requests: int = 1000
    rate_limit_storage_uri: str = "async+memory://"

    max_body_bytes: int = 1024 * 1024
    cors_origins: list[str] = [
        "https://app.gohighlevel.com",
        "https://innovativebioscience.com",
    ]

    ssl_cert: str = ""
    ssl_key: str = ""

    model_config = {"env_file": ".env", "extra": "ignore", "populate_by_name": True}

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def api_keys(self) -> tuple[str, ...]:
        return tuple(k for k in (self.internal_api_key, self.external_api_key) if k)

    @property
    def upstream_timeout(self) -> float:
        """Default upstream request timeout in seconds."""
        return self.circuit_breaker_timeout / 1000.0

    def configured_env(self) -> dict[str, bool]:
        """Which upstream credentials are present (never the values)."""
        return {
            "MONGODB_URI": bool(self.mongodb_uri),
            "GHL_API_KEY": bool(self.ghl_api_key),
            "OPENAI_API_KEY": bool(self.openai_api_key),
            "ANTHROPIC_API_KEY": bool(self.anthropic_api_key),
            "PINECONE_API_KEY": bool(self.pinecone_api_key),
            "WC_CONSUMER_KEY": bool(self.wc_consumer_key),
            "REDIS_URL": bool(self.redis_url),
        }


def load_settings(**overrides) -> GatewaySettings:
    """Build settings from the environment, applying explicit overrides."""
    settings = GatewaySettings(**overrides)
    logger.info(
        "Gateway config: env=%s, configured=%s",
        settings.app_env,
        sorted(k for k, v in settings.configured_env().items() if v),
    )
    return settings
