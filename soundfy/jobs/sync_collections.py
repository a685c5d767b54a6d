"""
Full collection sync for one shop, in pages of SYNC_COLLECTIONS_BATCH_SIZE.
"""

import logging

from soundfy.config.settings import get_settings
from soundfy.ingestion.importers import CollectionImporter
from soundfy.ingestion.jobs.steps import ResumableStep, StepResult, step_key
from soundfy.integrations.shopify.queries import collections_enumerator
from soundfy.jobs.base import ShopifyJob
from soundfy.platform.tenant_context import TenantJobContext

logger = logging.getLogger(__name__)


class SyncCollectionsJob(ShopifyJob):
    """Arguments: {"shop": <shop id>}"""

    async def perform(self, ctx: TenantJobContext, **arguments) -> StepResult:
        batch_size = get_settings().collections_batch_size
        step = ResumableStep(ctx.db, step_key(self.job_name, ctx.shop_id, "process"))
        importer = CollectionImporter(ctx.db, ctx.shop)

        async with ctx.graphql_client() as client:
            result = await step.run(
                lambda after: collections_enumerator(client, limit=batch_size, after=after),
                importer.import_records,
            )

        logger.info("sync.collections_completed", extra=ctx.log_extra(
            batches=result.batches,
            records=result.records,
            resumed_from=result.resumed_from,
        ))
        return result
