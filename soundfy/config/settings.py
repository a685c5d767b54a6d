"""
Runtime settings loaded from environment variables.

Values are read when get_settings() is first called, so tests can set
environment variables before the first use and call reset_settings()
between cases.

Usage:
    from soundfy.config.settings import get_settings

    settings = get_settings()
    client = ShopifyGraphQLClient(session, api_version=settings.shopify_api_version)
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_SHOPIFY_API_VERSION = "2025-10"
DEFAULT_PRODUCTS_BATCH_SIZE = 10
DEFAULT_COLLECTIONS_BATCH_SIZE = 25
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_DB_POOL_SIZE = 5
DEFAULT_DB_MAX_OVERFLOW = 10


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(
            "Invalid integer setting, using default",
            extra={"setting": name, "default": default},
        )
        return default
    if value <= 0:
        logger.warning(
            "Non-positive integer setting, using default",
            extra={"setting": name, "default": default},
        )
        return default
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(
            "Invalid float setting, using default",
            extra={"setting": name, "default": default},
        )
        return default


@dataclass(frozen=True)
class Settings:
    """
    Application settings.

    Attributes:
        database_url: SQLAlchemy database URL (None when not configured)
        shopify_api_secret: Shopify app API secret, used for webhook HMAC
        shopify_api_version: Admin API version used by the GraphQL client
        products_batch_size: Page size for the product sync
        collections_batch_size: Page size for the collection sync
        http_timeout_seconds: Timeout for Shopify API requests
        db_pool_size: Persistent connections kept by the engine pool
        db_max_overflow: Extra connections opened under load
    """
    database_url: Optional[str]
    shopify_api_secret: Optional[str]
    shopify_api_version: str = DEFAULT_SHOPIFY_API_VERSION
    products_batch_size: int = DEFAULT_PRODUCTS_BATCH_SIZE
    collections_batch_size: int = DEFAULT_COLLECTIONS_BATCH_SIZE
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    db_pool_size: int = DEFAULT_DB_POOL_SIZE
    db_max_overflow: int = DEFAULT_DB_MAX_OVERFLOW

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            shopify_api_secret=os.getenv("SHOPIFY_API_SECRET"),
            shopify_api_version=os.getenv("SHOPIFY_API_VERSION", DEFAULT_SHOPIFY_API_VERSION),
            products_batch_size=_int_env("SYNC_PRODUCTS_BATCH_SIZE", DEFAULT_PRODUCTS_BATCH_SIZE),
            collections_batch_size=_int_env(
                "SYNC_COLLECTIONS_BATCH_SIZE", DEFAULT_COLLECTIONS_BATCH_SIZE
            ),
            http_timeout_seconds=_float_env(
                "SHOPIFY_HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS
            ),
            db_pool_size=_int_env("DATABASE_POOL_SIZE", DEFAULT_DB_POOL_SIZE),
            db_max_overflow=_int_env("DATABASE_MAX_OVERFLOW", DEFAULT_DB_MAX_OVERFLOW),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (tests only)."""
    global _settings
    _settings = None
