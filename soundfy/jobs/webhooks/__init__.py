"""
Webhook jobs, one per Shopify topic.

WEBHOOK_JOBS maps the topic as it appears in the receiver URL to the
registered job name.
"""

from soundfy.jobs.webhooks.products import ProductsCreateJob, ProductsUpdateJob, ProductsDeleteJob
from soundfy.jobs.webhooks.collections import (
    CollectionsCreateJob,
    CollectionsUpdateJob,
    CollectionsDeleteJob,
)
from soundfy.jobs.webhooks.app_uninstalled import AppUninstalledJob
from soundfy.jobs.webhooks.compliance import CustomersDataRequestJob, CustomersRedactJob, ShopRedactJob

WEBHOOK_JOBS = {
    "products_create": ProductsCreateJob.job_name,
    "products_update": ProductsUpdateJob.job_name,
    "products_delete": ProductsDeleteJob.job_name,
    "collections_create": CollectionsCreateJob.job_name,
    "collections_update": CollectionsUpdateJob.job_name,
    "collections_delete": CollectionsDeleteJob.job_name,
    "app_uninstalled": AppUninstalledJob.job_name,
    "customers_data_request": CustomersDataRequestJob.job_name,
    "customers_redact": CustomersRedactJob.job_name,
    "shop_redact": ShopRedactJob.job_name,
}

__all__ = [
    "WEBHOOK_JOBS",
    "ProductsCreateJob",
    "ProductsUpdateJob",
    "ProductsDeleteJob",
    "CollectionsCreateJob",
    "CollectionsUpdateJob",
    "CollectionsDeleteJob",
    "AppUninstalledJob",
    "CustomersDataRequestJob",
    "CustomersRedactJob",
    "ShopRedactJob",
]
