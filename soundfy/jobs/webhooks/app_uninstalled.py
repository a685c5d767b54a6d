"""
app/uninstalled webhook: soft-uninstalls the shop.

The shop row is locked without waiting; the domain is suffixed and the
token redacted (see Shop.uninstall). A delivery for a shop that no longer
exists under that domain is discarded by the tenant scope.
"""

import logging

from soundfy.database.locking import non_blocking_lock
from soundfy.jobs.base import ShopifyJob
from soundfy.models.shop import Shop
from soundfy.platform.tenant_context import TenantJobContext

logger = logging.getLogger(__name__)


class AppUninstalledJob(ShopifyJob):
    """Arguments: {"shop_domain": ..., "webhook": <app/uninstalled payload>}"""

    async def perform(self, ctx: TenantJobContext, **arguments) -> Shop:
        log_extra = ctx.log_extra()

        with non_blocking_lock(ctx.db, ctx.shop) as shop:
            shop.uninstall()

        logger.info("shop.uninstalled", extra=log_extra)
        return shop
