"""
Database models for shops and their mirrored Shopify catalog.

All catalog models are shop-scoped through ShopScopedMixin.
"""

from soundfy.models.base import ShopScopedMixin, TimestampMixin
from soundfy.models.shop import Shop, ShopUninstalledError
from soundfy.models.product import Product, ProductStatus, normalize_status
from soundfy.models.recordable import Album, AlbumTrack, SingleTrack
from soundfy.models.variant import (
    Capability,
    CapabilityError,
    RecordableType,
    Variant,
    VariantKind,
)
from soundfy.models.collection import Collection
from soundfy.ingestion.jobs.models import CheckpointStatus, SyncCheckpoint

__all__ = [
    "TimestampMixin",
    "ShopScopedMixin",
    "Shop",
    "ShopUninstalledError",
    "Product",
    "ProductStatus",
    "normalize_status",
    "SingleTrack",
    "Album",
    "AlbumTrack",
    "Variant",
    "VariantKind",
    "RecordableType",
    "Capability",
    "CapabilityError",
    "Collection",
    "SyncCheckpoint",
    "CheckpointStatus",
]
