"""API routes."""
from soundfy.api.routes import health
from soundfy.api.routes import webhooks_shopify

__all__ = ["health", "webhooks_shopify"]
