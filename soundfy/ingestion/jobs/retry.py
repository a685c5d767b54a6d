"""
Retry policy and backoff calculation for Shopify jobs.

Implements error-aware retry logic:
- throttled (429 / "Throttled") -> retry, respecting Retry-After
- network errors and upstream 5xx -> retry with exponential backoff + jitter
- product locked by Shopify, row locked locally, record not yet written
  -> retry with backoff
- unknown shop, rejected request, mutation user errors, malformed
  webhook payloads -> discard
- after max retries -> dead letter

Backoff formula: base_delay * (2^attempt) + random_jitter
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from soundfy.database.exceptions import RecordLockedError, RecordNotFound, TenantMismatchError
from soundfy.integrations.shopify.exceptions import (
    APIRequestError,
    APIUserError,
    EntityLockedError,
    ShopifyConnectionError,
    TooManyRequestsError,
)
from soundfy.models.shop import ShopUninstalledError
from soundfy.platform.tenant_context import TenantNotFound

logger = logging.getLogger(__name__)

# Retry configuration constants
MAX_RETRIES = 5
BASE_DELAY_SECONDS = 3.0
MAX_DELAY_SECONDS = 900.0  # 15 minutes max delay
JITTER_FACTOR = 0.25  # +/- 25% jitter


class ErrorCategory(str, Enum):
    """Error classification for retry decisions."""
    RATE_LIMIT = "rate_limit"  # throttled - retry with Retry-After
    CONNECTION = "connection"  # network errors, 5xx - retry
    ENTITY_LOCKED = "entity_locked"  # Shopify product busy - retry
    RECORD_LOCKED = "record_locked"  # local row lock held - retry
    RECORD_NOT_FOUND = "record_not_found"  # create not yet applied - retry
    TENANT_NOT_FOUND = "tenant_not_found"  # unknown shop - discard
    SHOP_UNINSTALLED = "shop_uninstalled"  # token redacted - discard
    TENANT_MISMATCH = "tenant_mismatch"  # cross-shop write - discard
    REQUEST_REJECTED = "request_rejected"  # 4xx / GraphQL errors - discard
    USER_ERROR = "user_error"  # mutation userErrors - discard
    INVALID_PAYLOAD = "invalid_payload"  # malformed webhook body - discard
    UNKNOWN = "unknown"  # unknown errors - limited retry


DISCARD_CATEGORIES = frozenset({
    ErrorCategory.TENANT_NOT_FOUND,
    ErrorCategory.SHOP_UNINSTALLED,
    ErrorCategory.TENANT_MISMATCH,
    ErrorCategory.REQUEST_REJECTED,
    ErrorCategory.USER_ERROR,
    ErrorCategory.INVALID_PAYLOAD,
})


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy configuration.

    Attributes:
        max_retries: Maximum retry attempts before dead letter
        base_delay_seconds: Initial delay between retries
        max_delay_seconds: Maximum delay cap
        jitter_factor: Random jitter factor (0.25 = +/- 25%)
    """
    max_retries: int = MAX_RETRIES
    base_delay_seconds: float = BASE_DELAY_SECONDS
    max_delay_seconds: float = MAX_DELAY_SECONDS
    jitter_factor: float = JITTER_FACTOR


@dataclass
class RetryDecision:
    """What to do with a failed job: retry later, discard, or dead-letter."""
    should_retry: bool
    delay_seconds: float
    next_retry_at: Optional[datetime]
    discard: bool
    move_to_dlq: bool
    reason: str

    @classmethod
    def retry_in(cls, delay: float, reason: str) -> "RetryDecision":
        return cls(
            should_retry=True,
            delay_seconds=delay,
            next_retry_at=datetime.now(timezone.utc) + timedelta(seconds=delay),
            discard=False,
            move_to_dlq=False,
            reason=reason,
        )

    @classmethod
    def discarded(cls, reason: str) -> "RetryDecision":
        return cls(False, 0, None, discard=True, move_to_dlq=False, reason=reason)

    @classmethod
    def dead_letter(cls, reason: str) -> "RetryDecision":
        return cls(False, 0, None, discard=False, move_to_dlq=True, reason=reason)


# Most specific classes first: TooManyRequestsError, EntityLockedError and
# APIUserError all derive from APIRequestError.
_CATEGORY_BY_EXCEPTION = (
    (TooManyRequestsError, ErrorCategory.RATE_LIMIT),
    (EntityLockedError, ErrorCategory.ENTITY_LOCKED),
    (ShopifyConnectionError, ErrorCategory.CONNECTION),
    (APIUserError, ErrorCategory.USER_ERROR),
    (APIRequestError, ErrorCategory.REQUEST_REJECTED),
    (RecordLockedError, ErrorCategory.RECORD_LOCKED),
    (RecordNotFound, ErrorCategory.RECORD_NOT_FOUND),
    (TenantNotFound, ErrorCategory.TENANT_NOT_FOUND),
    (ShopUninstalledError, ErrorCategory.SHOP_UNINSTALLED),
    (TenantMismatchError, ErrorCategory.TENANT_MISMATCH),
    (ValidationError, ErrorCategory.INVALID_PAYLOAD),
)


def categorize_exception(error: BaseException) -> ErrorCategory:
    """Map a job exception to the category that drives its retry decision."""
    for exc_type, category in _CATEGORY_BY_EXCEPTION:
        if isinstance(error, exc_type):
            return category
    return ErrorCategory.UNKNOWN


def retry_after_for(error: BaseException) -> Optional[float]:
    """Server-specified delay carried by a throttling error, if any."""
    return getattr(error, "retry_after", None)


def calculate_backoff(
    attempt: int,
    policy: RetryPolicy = RetryPolicy(),
    retry_after: Optional[float] = None,
) -> float:
    """
    Delay before retry number `attempt` (0-indexed).

    A server-provided Retry-After is a floor: jitter is only ever added on
    top of it. Otherwise the delay doubles per attempt, +/- jitter, capped at
    the policy maximum. Never less than one second.
    """
    if retry_after is not None and retry_after > 0:
        spread = policy.jitter_factor * retry_after
        return max(retry_after + random.uniform(0, spread), 1.0)

    delay = policy.base_delay_seconds * (2 ** attempt)
    spread = delay * policy.jitter_factor
    delay = min(delay + random.uniform(-spread, spread), policy.max_delay_seconds)
    return max(delay, 1.0)


def should_retry(
    error_category: ErrorCategory,
    retry_count: int,
    policy: RetryPolicy = RetryPolicy(),
    retry_after: Optional[float] = None,
) -> RetryDecision:
    """
    Decide between retry, discard and dead letter.

    retry_after is honoured only for RATE_LIMIT errors.
    """
    if error_category in DISCARD_CATEGORIES:
        return RetryDecision.discarded(
            f"Non-retryable error ({error_category.value}) - job discarded"
        )

    if retry_count >= policy.max_retries:
        return RetryDecision.dead_letter(f"Max retries ({policy.max_retries}) exceeded")

    if error_category != ErrorCategory.RATE_LIMIT:
        retry_after = None
    delay = calculate_backoff(retry_count, policy=policy, retry_after=retry_after)
    return RetryDecision.retry_in(
        delay,
        f"Transient error ({error_category.value}) - retry in {delay:.0f}s "
        f"(attempt {retry_count + 1}/{policy.max_retries})",
    )


def log_retry_decision(
    job_name: str,
    shop_id: Optional[str],
    error_category: ErrorCategory,
    decision: RetryDecision,
) -> None:
    """
    Log retry decision for observability.

    Args:
        job_name: Job class name
        shop_id: Shop the job ran for (None when unresolved)
        error_category: Classified error type
        decision: Retry decision made
    """
    log_extra = {
        "job_name": job_name,
        "shop_id": shop_id,
        "error_category": error_category.value,
        "should_retry": decision.should_retry,
        "delay_seconds": decision.delay_seconds,
        "discard": decision.discard,
        "move_to_dlq": decision.move_to_dlq,
        "reason": decision.reason,
    }

    if decision.next_retry_at:
        log_extra["next_retry_at"] = decision.next_retry_at.isoformat()

    if decision.move_to_dlq:
        logger.warning("job.dead_letter", extra=log_extra)
    elif decision.should_retry:
        logger.info("job.retry", extra=log_extra)
    else:
        logger.error("job.discarded", extra=log_extra)
