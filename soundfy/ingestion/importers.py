"""
Importers that reconcile Shopify API records into local rows.

Each importer is bound to one shop; every row it writes carries that
shop's id. Remote ids are normalised to numeric shopify_uuid values.

Rows are keyed by (shop_id, shopify_uuid) and only allow-listed columns
are overwritten, so local state (discarded_at, recording fields) is never
clobbered by a sync.
"""

import logging
from typing import Any, Dict, List, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from soundfy.ingestion.upsert import upsert_all
from soundfy.integrations.shopify.gid import shopify_uuid
from soundfy.models.collection import Collection
from soundfy.models.product import Product, normalize_status
from soundfy.models.shop import Shop
from soundfy.models.variant import Variant

logger = logging.getLogger(__name__)

SHOP_UNIQUE_KEY = ("shop_id", "shopify_uuid")

COLLECTION_UPDATE_ONLY = ("title",)
PRODUCT_UPDATE_ONLY = ("title", "status", "image_url")
VARIANT_UPDATE_ONLY = ("title",)


def _nodes(connection: Any) -> List[Dict[str, Any]]:
    """Nodes of a nested connection ({"nodes": [...]}), or a plain list."""
    if connection is None:
        return []
    if isinstance(connection, list):
        return connection
    return list(connection.get("nodes") or [])


def _featured_image_url(api_product: Dict[str, Any]) -> Any:
    image = api_product.get("featured_image") or {}
    return image.get("url")


class CollectionImporter:
    """Upserts collections for one shop."""

    def __init__(self, db: Session, shop: Shop):
        self.db = db
        self.shop = shop

    def import_records(self, api_collections: Sequence[Dict[str, Any]]) -> int:
        records = [
            {
                "shop_id": self.shop.id,
                "shopify_uuid": shopify_uuid(api_collection["id"]),
                "title": api_collection.get("title"),
            }
            for api_collection in api_collections
        ]
        count = upsert_all(
            self.db,
            Collection,
            records,
            unique_by=SHOP_UNIQUE_KEY,
            update_only=COLLECTION_UPDATE_ONLY,
        )
        logger.info("import.collections", extra={
            "shop_id": self.shop.id,
            "records": len(records),
            "changed": count,
        })
        return len(records)


class ProductImporter:
    """
    Upserts products and their variants for one shop.

    Variants are imported per product after the product batch. A product
    that cannot be found again after the upsert has its variants skipped.
    """

    def __init__(self, db: Session, shop: Shop):
        self.db = db
        self.shop = shop

    def import_records(self, api_products: Sequence[Dict[str, Any]]) -> int:
        records = [
            {
                "shop_id": self.shop.id,
                "shopify_uuid": shopify_uuid(api_product["id"]),
                "title": api_product.get("title"),
                "status": normalize_status(api_product.get("status")),
                "image_url": _featured_image_url(api_product),
            }
            for api_product in api_products
        ]
        count = upsert_all(
            self.db,
            Product,
            records,
            unique_by=SHOP_UNIQUE_KEY,
            update_only=PRODUCT_UPDATE_ONLY,
        )
        logger.info("import.products", extra={
            "shop_id": self.shop.id,
            "records": len(records),
            "changed": count,
        })

        with_variants = [p for p in api_products if _nodes(p.get("variants"))]
        if not with_variants:
            return len(records)

        product_ids = self._product_ids([shopify_uuid(p["id"]) for p in with_variants])
        for api_product in with_variants:
            product_uuid = shopify_uuid(api_product["id"])
            product_id = product_ids.get(product_uuid)
            if product_id is None:
                logger.warning("import.variants_skipped", extra={
                    "shop_id": self.shop.id,
                    "shopify_uuid": product_uuid,
                })
                continue
            self.import_variants(product_id, _nodes(api_product.get("variants")))

        return len(records)

    def import_variants(self, product_id: str, api_variants: Sequence[Dict[str, Any]]) -> int:
        """Upsert variants of one local product. Only titles are updated."""
        records = [
            {
                "shop_id": self.shop.id,
                "product_id": product_id,
                "shopify_uuid": shopify_uuid(api_variant["id"]),
                "title": api_variant.get("title"),
            }
            for api_variant in api_variants
        ]
        return upsert_all(
            self.db,
            Variant,
            records,
            unique_by=SHOP_UNIQUE_KEY,
            update_only=VARIANT_UPDATE_ONLY,
        )

    def _product_ids(self, uuids: Sequence[str]) -> Dict[str, str]:
        rows = self.db.execute(
            select(Product.shopify_uuid, Product.id).where(
                Product.shop_id == self.shop.id,
                Product.shopify_uuid.in_(uuids),
            )
        )
        return {row.shopify_uuid: row.id for row in rows}
