"""
Mandatory GDPR compliance webhooks.

No customer data is stored, so each request is acknowledged once the shop
is resolved.
"""

import logging

from soundfy.jobs.base import ShopifyJob
from soundfy.platform.tenant_context import TenantJobContext

logger = logging.getLogger(__name__)


class _ComplianceJob(ShopifyJob):
    async def perform(self, ctx: TenantJobContext, **arguments) -> None:
        logger.info("webhook.compliance_acknowledged", extra=ctx.log_extra())


class CustomersDataRequestJob(_ComplianceJob):
    """customers/data_request"""


class CustomersRedactJob(_ComplianceJob):
    """customers/redact"""


class ShopRedactJob(_ComplianceJob):
    """shop/redact"""
