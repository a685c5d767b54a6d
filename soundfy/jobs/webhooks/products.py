"""
Product webhook jobs: products/create, products/update, products/delete.

Each job runs received -> tenant-resolved -> record-locked -> applied:
- the product is looked up only inside the job's shop
- writes happen under a non-blocking row lock, so concurrent deliveries
  for the same product fail fast and are retried instead of waiting
- a discarded product is never written again, whatever arrives later

Webhook payloads carry bare numeric ids:
    {"id": 123, "title": "Album X", "status": "ACTIVE",
     "image": {"src": "..."}, "variants": [{"id": 456, "title": "Track 1"}]}
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from soundfy.database.exceptions import RecordNotFound
from soundfy.database.locking import non_blocking_lock
from soundfy.ingestion.importers import VARIANT_UPDATE_ONLY
from soundfy.ingestion.upsert import upsert_all
from soundfy.integrations.shopify.gid import shopify_uuid
from soundfy.jobs.base import ShopifyJob
from soundfy.jobs.webhooks.payloads import DeletePayload, ProductPayload
from soundfy.models.product import Product, normalize_status
from soundfy.models.shop import Shop
from soundfy.models.variant import Variant
from soundfy.platform.tenant_context import TenantJobContext

logger = logging.getLogger(__name__)


def find_product(db: Session, shop: Shop, product_uuid: str) -> Optional[Product]:
    return (
        db.query(Product)
        .filter(Product.shop_id == shop.id, Product.shopify_uuid == product_uuid)
        .one_or_none()
    )


def create_or_find_product(db: Session, shop: Shop, product_uuid: str) -> Product:
    """
    Insert the product, or load it when the insert hits the unique key.

    The insert runs in a savepoint so a concurrent create for the same
    product only rolls back this attempt. The new row is committed right
    away so other deliveries can see and lock it.
    """
    existing = find_product(db, shop, product_uuid)
    if existing is not None:
        return existing

    try:
        with db.begin_nested():
            product = Product(shop_id=shop.id, shopify_uuid=product_uuid)
            db.add(product)
        db.commit()
        return product
    except IntegrityError:
        logger.info("webhook.product_create_race", extra={
            "shop_id": shop.id,
            "shopify_uuid": product_uuid,
        })

    product = find_product(db, shop, product_uuid)
    if product is None:
        raise RecordNotFound(
            f"Product {product_uuid} vanished after a conflicting insert",
            model="Product",
            key=product_uuid,
        )
    return product


def variant_records(shop: Shop, product: Product, payload: ProductPayload) -> List[Dict[str, Any]]:
    return [
        {
            "shop_id": shop.id,
            "product_id": product.id,
            "shopify_uuid": shopify_uuid(variant.id),
            "title": variant.title,
        }
        for variant in payload.variants
    ]


class _ProductWriteJob(ShopifyJob):
    """Shared create/update behaviour."""

    async def perform(self, ctx: TenantJobContext, **arguments) -> Product:
        payload = ProductPayload.model_validate(arguments["webhook"])
        db, shop = ctx.db, ctx.shop
        product_uuid = shopify_uuid(payload.id)

        product = create_or_find_product(db, shop, product_uuid)
        if product.is_discarded:
            logger.info("webhook.product_discarded_skip", extra=ctx.log_extra(shopify_uuid=product_uuid))
            return product

        with non_blocking_lock(db, product) as locked:
            if locked.is_discarded:
                logger.info("webhook.product_discarded_skip", extra=ctx.log_extra(shopify_uuid=product_uuid))
                return locked

            locked.title = payload.title
            locked.status = normalize_status(payload.status)
            locked.image_url = payload.image_url
            db.flush()

            records = variant_records(shop, locked, payload)
            if records:
                upsert_all(
                    db,
                    Variant,
                    records,
                    unique_by=("shop_id", "shopify_uuid"),
                    update_only=VARIANT_UPDATE_ONLY,
                )

        logger.info("webhook.product_applied", extra=ctx.log_extra(
            shopify_uuid=product_uuid,
            variants=len(records),
        ))
        return locked


class ProductsCreateJob(_ProductWriteJob):
    """Arguments: {"shop_domain": ..., "webhook": <products/create payload>}"""


class ProductsUpdateJob(_ProductWriteJob):
    """Arguments: {"shop_domain": ..., "webhook": <products/update payload>}"""


class ProductsDeleteJob(ShopifyJob):
    """
    Arguments: {"shop_domain": ..., "webhook": {"id": 123}}

    The product must already exist locally. If the delete overtook the
    create, RecordNotFound makes the job retry until the create lands.
    """

    async def perform(self, ctx: TenantJobContext, **arguments) -> Product:
        payload = DeletePayload.model_validate(arguments["webhook"])
        db, shop = ctx.db, ctx.shop
        product_uuid = shopify_uuid(payload.id)

        product = find_product(db, shop, product_uuid)
        if product is None:
            raise RecordNotFound(
                f"Product {product_uuid} not found for shop {shop.id}",
                model="Product",
                key=product_uuid,
            )
        if product.is_discarded:
            return product

        with non_blocking_lock(db, product) as locked:
            if not locked.is_discarded:
                locked.discard()

        logger.info("webhook.product_discarded", extra=ctx.log_extra(shopify_uuid=product_uuid))
        return locked
