"""
Full product sync for one shop.

Walks the shop's products in pages of SYNC_PRODUCTS_BATCH_SIZE and
upserts each page with its variants. The step is resumable: a crashed run
picks up after the last committed page.
"""

import logging

from soundfy.config.settings import get_settings
from soundfy.ingestion.importers import ProductImporter
from soundfy.ingestion.jobs.steps import ResumableStep, StepResult, step_key
from soundfy.integrations.shopify.queries import products_enumerator
from soundfy.jobs.base import ShopifyJob
from soundfy.platform.tenant_context import TenantJobContext

logger = logging.getLogger(__name__)


class SyncProductsJob(ShopifyJob):
    """Arguments: {"shop": <shop id>}"""

    async def perform(self, ctx: TenantJobContext, **arguments) -> StepResult:
        batch_size = get_settings().products_batch_size
        step = ResumableStep(ctx.db, step_key(self.job_name, ctx.shop_id, "process"))
        importer = ProductImporter(ctx.db, ctx.shop)

        async with ctx.graphql_client() as client:
            result = await step.run(
                lambda after: products_enumerator(client, limit=batch_size, after=after),
                importer.import_records,
            )

        logger.info("sync.products_completed", extra=ctx.log_extra(
            batches=result.batches,
            records=result.records,
            resumed_from=result.resumed_from,
        ))
        return result
