"""
Runs once a merchant has completed OAuth: schedules the initial syncs.
"""

import logging

from soundfy.jobs.base import ShopifyJob
from soundfy.jobs.sync_collections import SyncCollectionsJob
from soundfy.jobs.sync_products import SyncProductsJob
from soundfy.platform.tenant_context import TenantJobContext

logger = logging.getLogger(__name__)


class AfterAuthenticateJob(ShopifyJob):
    """Arguments: {"shop_domain": <myshopify domain>}"""

    async def perform(self, ctx: TenantJobContext, **arguments) -> None:
        shop_id = ctx.shop_id
        logger.info("shop.authenticated", extra=ctx.log_extra())

        await SyncCollectionsJob.perform_later({"shop": shop_id})
        await SyncProductsJob.perform_later({"shop": shop_id})
