"""
Collection webhook jobs: collections/create, collections/update,
collections/delete.
"""

import logging
from typing import Optional

from soundfy.ingestion.importers import CollectionImporter
from soundfy.integrations.shopify.gid import shopify_uuid
from soundfy.jobs.base import ShopifyJob
from soundfy.jobs.webhooks.payloads import CollectionPayload, DeletePayload
from soundfy.models.collection import Collection
from soundfy.platform.tenant_context import TenantJobContext

logger = logging.getLogger(__name__)


class _CollectionWriteJob(ShopifyJob):
    """Upserts the collection; only the title is ever overwritten."""

    async def perform(self, ctx: TenantJobContext, **arguments) -> None:
        payload = CollectionPayload.model_validate(arguments["webhook"])
        CollectionImporter(ctx.db, ctx.shop).import_records([payload.model_dump()])
        ctx.db.commit()

        logger.info("webhook.collection_applied", extra=ctx.log_extra(
            shopify_uuid=shopify_uuid(payload.id),
        ))


class CollectionsCreateJob(_CollectionWriteJob):
    """Arguments: {"shop_domain": ..., "webhook": <collections/create payload>}"""


class CollectionsUpdateJob(_CollectionWriteJob):
    """Arguments: {"shop_domain": ..., "webhook": <collections/update payload>}"""


class CollectionsDeleteJob(ShopifyJob):
    """Arguments: {"shop_domain": ..., "webhook": {"id": 123}}"""

    async def perform(self, ctx: TenantJobContext, **arguments) -> Optional[str]:
        payload = DeletePayload.model_validate(arguments["webhook"])
        collection_uuid = shopify_uuid(payload.id)

        collection = (
            ctx.db.query(Collection)
            .filter(Collection.shop_id == ctx.shop_id, Collection.shopify_uuid == collection_uuid)
            .one_or_none()
        )
        if collection is None:
            logger.info("webhook.collection_missing", extra=ctx.log_extra(shopify_uuid=collection_uuid))
            return None

        collection_id = collection.id
        ctx.db.delete(collection)
        ctx.db.commit()

        logger.info("webhook.collection_deleted", extra=ctx.log_extra(shopify_uuid=collection_uuid))
        return collection_id
