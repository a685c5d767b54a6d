"""
Base class for shop-scoped background jobs.

A job is a class with an async perform(ctx, **arguments). Running it
through perform_now():
1. resolves the shop from the arguments (tenant_scope)
2. calls perform with the job's TenantJobContext
3. turns any exception into a retry, discard or dead letter decision

Jobs register themselves by name in JOB_REGISTRY so backends and the
webhook receiver can refer to them as plain strings.

Usage:
    class SyncProductsJob(ShopifyJob):
        async def perform(self, ctx, **arguments):
            ...

    await SyncProductsJob.perform_later({"shop": shop.id})
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Optional, Type

from sqlalchemy.orm import Session

from soundfy.ingestion.jobs.retry import (
    ErrorCategory,
    RetryPolicy,
    categorize_exception,
    log_retry_decision,
    retry_after_for,
    should_retry,
)
from soundfy.models.shop import Shop
from soundfy.platform.secrets import redact_secrets
from soundfy.platform.tenant_context import (
    ClientFactory,
    JobTarget,
    TenantJobContext,
    tenant_scope,
)

logger = logging.getLogger(__name__)

JOB_REGISTRY: Dict[str, Type["ShopifyJob"]] = {}


class UnknownJobError(KeyError):
    """Raised when a job name is not registered."""
    pass


class JobStatus(str, enum.Enum):
    """Outcome of one job attempt."""
    SUCCEEDED = "succeeded"
    RETRY = "retry"
    DISCARDED = "discarded"
    DEAD_LETTER = "dead_letter"


@dataclass
class JobResult:
    """
    Result of one job attempt.

    Attributes:
        job_name: Registered job name
        status: succeeded | retry | discarded | dead_letter
        delay_seconds: Backoff before the next attempt (retry only)
        error_category: Classified error for failed attempts
        error: The exception raised, if any
        value: Whatever perform() returned
        retry_count: Retries made before this attempt
    """
    job_name: str
    status: JobStatus
    delay_seconds: float = 0.0
    error_category: Optional[ErrorCategory] = None
    error: Optional[BaseException] = field(default=None, repr=False)
    value: Any = None
    retry_count: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCEEDED

    @property
    def is_terminal(self) -> bool:
        return self.status != JobStatus.RETRY


def get_job_class(job_name: str) -> Type["ShopifyJob"]:
    try:
        return JOB_REGISTRY[job_name]
    except KeyError:
        raise UnknownJobError(job_name) from None


def serialize_arguments(arguments: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Replace Shop instances by their ids so arguments can be queued."""
    serialized = dict(arguments or {})
    if isinstance(serialized.get("shop"), Shop):
        serialized["shop"] = serialized["shop"].id
    return serialized


class ShopifyJob:
    """
    Base class for jobs that run for one shop.

    Subclasses implement perform(). Set job_name to override the
    registered name and retry_policy to tune retries.
    """

    job_name: ClassVar[str] = "ShopifyJob"
    retry_policy: ClassVar[RetryPolicy] = RetryPolicy()

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if "job_name" not in cls.__dict__:
            cls.job_name = cls.__name__
        # Private bases share behaviour only
        if not cls.__name__.startswith("_"):
            JOB_REGISTRY[cls.job_name] = cls

    async def perform(self, ctx: Optional[TenantJobContext], **arguments) -> Any:
        raise NotImplementedError

    @classmethod
    async def perform_now(
        cls,
        db: Session,
        arguments: Optional[Mapping[str, Any]] = None,
        retry_count: int = 0,
        client_factory: Optional[ClientFactory] = None,
    ) -> JobResult:
        """
        Run the job in the current process.

        Errors never escape: they are classified and returned as a
        JobResult for the backend to act on.
        """
        arguments = dict(arguments or {})
        target = JobTarget.from_arguments(arguments)
        log_extra = {
            "job_name": cls.job_name,
            "target": target.kind.value,
            "shop_id": target.shop_id,
            "shop_domain": target.shop_domain,
            "retry_count": retry_count,
        }

        logger.info("job.started", extra=log_extra)
        try:
            with tenant_scope(db, target, cls.job_name, client_factory=client_factory) as ctx:
                value = await cls().perform(ctx, **arguments)
        except Exception as e:
            db.rollback()
            return cls._handle_error(e, retry_count, log_extra)

        logger.info("job.succeeded", extra=log_extra)
        return JobResult(
            job_name=cls.job_name,
            status=JobStatus.SUCCEEDED,
            value=value,
            retry_count=retry_count,
        )

    @classmethod
    def _handle_error(cls, error: Exception, retry_count: int, log_extra: Dict[str, Any]) -> JobResult:
        category = categorize_exception(error)
        decision = should_retry(
            category,
            retry_count,
            policy=cls.retry_policy,
            retry_after=retry_after_for(error),
        )

        logger.warning(
            "job.failed",
            extra=redact_secrets({
                **log_extra,
                "error_category": category.value,
                "error": str(error),
            }),
            exc_info=category == ErrorCategory.UNKNOWN,
        )
        log_retry_decision(cls.job_name, log_extra.get("shop_id"), category, decision)

        if decision.should_retry:
            status = JobStatus.RETRY
        elif decision.discard:
            status = JobStatus.DISCARDED
        else:
            status = JobStatus.DEAD_LETTER

        return JobResult(
            job_name=cls.job_name,
            status=status,
            delay_seconds=decision.delay_seconds,
            error_category=category,
            error=error,
            retry_count=retry_count,
        )

    @classmethod
    async def perform_later(cls, arguments: Optional[Mapping[str, Any]] = None, delay_seconds: float = 0):
        """Hand the job to the configured backend."""
        # Imported here: the backend module imports this one
        from soundfy.jobs.backend import get_job_backend

        return await get_job_backend().enqueue(
            cls.job_name,
            serialize_arguments(arguments),
            delay_seconds=delay_seconds,
        )
