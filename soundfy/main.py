"""
FastAPI application entry point for the Soundfy sync backend.

Only two surfaces are served: the health probe and the Shopify webhook
receiver. Webhooks are authenticated by HMAC, not by session.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from soundfy import __version__
from soundfy.api.routes import health, webhooks_shopify
from soundfy.config.settings import get_settings
from soundfy.platform.log_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()
    logger.info("Starting Soundfy API", extra={
        "shopify_api_version": settings.shopify_api_version,
        "webhooks_configured": bool(settings.shopify_api_secret),
        "database_configured": bool(settings.database_url),
    })

    yield

    logger.info("Shutting down Soundfy API")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Soundfy API",
        description="Shopify webhook receiver and catalog sync",
        version=__version__,
        lifespan=lifespan,
    )

    # Health route
    app.include_router(health.router)

    # Shopify webhook routes (uses HMAC verification)
    app.include_router(webhooks_shopify.router)

    return app


app = create_app()
