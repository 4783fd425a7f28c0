"""FastAPI app factory and process entry point for the integration gateway."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI

from gateway import __version__
from gateway.config import GatewaySettings, load_settings
from gateway.context import GatewayContext
from gateway.error_handlers import install_exception_handlers
from gateway.lifecycle import install_fatal_handlers
from gateway.logging_config import configure_logging
from gateway.routes import crm, inventory, system
from gateway.routing import RouteDispatcher
from gateway.security.middleware import install_security_middleware
from gateway.webhooks.handlers import register_webhook_routes
from gateway.webhooks.handlers import router as webhook_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Install fatal-error handling on startup, close upstream clients on shutdown.

    When TESTING=1 the fatal handlers are left alone so a failing test
    cannot signal the test runner.
    """
    gateway: GatewayContext = app.state.gateway
    if not gateway.settings.testing:
        install_fatal_handlers(asyncio.get_running_loop())
    logger.info("Integration gateway started (env=%s, version=%s)", gateway.settings.app_env, __version__)
    yield
    await gateway.aclose()
    logger.info("Integration gateway stopped")


def create_app(
    settings: GatewaySettings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build a fully wired gateway app.

    ``transport`` stands in for the network on every upstream call.
    """
    settings = settings or load_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Integration Gateway",
        description="Outbound gateway for CRM, commerce, vector search and LLM APIs",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.gateway = GatewayContext.build(settings, transport=transport)

    app.include_router(system.router)
    app.include_router(crm.router)
    app.include_router(inventory.router)
    register_webhook_routes(app)

    app.state.gateway.dispatcher = RouteDispatcher.from_routers(
        system.router, crm.router, inventory.router, webhook_router
    )

    install_exception_handlers(app)
    install_security_middleware(app)
    return app


def main() -> None:
    import uvicorn

    load_dotenv()
    settings = load_settings()
    app = create_app(settings)

    ssl_options = {}
    if settings.is_production:
        if settings.ssl_cert and settings.ssl_key:
            ssl_options = {"ssl_certfile": settings.ssl_cert, "ssl_keyfile": settings.ssl_key}
            logger.info("TLS enabled with certificate %s", settings.ssl_cert)
        else:
            logger.warning("Production mode without SSL_CERT/SSL_KEY: serving plain HTTP")

    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None, **ssl_options)


if __name__ == "__main__":
    main()
