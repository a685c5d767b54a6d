"""
Background jobs.

Importing this package registers every job in JOB_REGISTRY.
"""

from soundfy.jobs.base import JOB_REGISTRY, JobResult, JobStatus, ShopifyJob, get_job_class
from soundfy.jobs.backend import (
    InlineJobBackend,
    JobBackend,
    QueuedJobBackend,
    get_job_backend,
    set_job_backend,
)
from soundfy.jobs.sync_products import SyncProductsJob
from soundfy.jobs.sync_collections import SyncCollectionsJob
from soundfy.jobs.after_authenticate import AfterAuthenticateJob
from soundfy.jobs.webhooks import WEBHOOK_JOBS

__all__ = [
    "JOB_REGISTRY",
    "JobResult",
    "JobStatus",
    "ShopifyJob",
    "get_job_class",
    "JobBackend",
    "InlineJobBackend",
    "QueuedJobBackend",
    "get_job_backend",
    "set_job_backend",
    "SyncProductsJob",
    "SyncCollectionsJob",
    "AfterAuthenticateJob",
    "WEBHOOK_JOBS",
]
