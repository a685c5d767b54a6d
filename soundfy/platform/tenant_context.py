"""
Tenant scope for background jobs.

CRITICAL SECURITY REQUIREMENTS:
- The shop a job acts for is resolved from the job's arguments (shop or
  shop_domain), NEVER from fields inside a webhook payload
- Everything a job does runs through an explicit TenantJobContext; there
  is no ambient "current shop"
- A context is closed when its scope exits; using it afterwards raises

Usage:
    target = JobTarget.from_arguments({"shop_domain": "a.myshopify.com"})
    with tenant_scope(db, target, job_name="ProductsUpdateJob") as ctx:
        ctx.shop        # the resolved Shop
        ctx.graphql_client()
"""

import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping, Optional

from sqlalchemy.orm import Session

from soundfy.integrations.shopify.client import ShopifyGraphQLClient
from soundfy.integrations.shopify.session import ShopifySession
from soundfy.models.shop import Shop

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ShopifySession], ShopifyGraphQLClient]


class TenantScopeError(Exception):
    """Base exception for tenant scope errors."""
    pass


class TenantNotFound(TenantScopeError):
    """Raised when the shop named by a job cannot be found. Not retried."""

    def __init__(self, message: str, shop_domain: Optional[str] = None, shop_id: Optional[str] = None):
        super().__init__(message)
        self.shop_domain = shop_domain
        self.shop_id = shop_id


class TenantContextClosedError(TenantScopeError):
    """Raised when a context is used after its scope has exited."""
    pass


class TargetKind(str, enum.Enum):
    SHOP = "shop"
    SHOP_DOMAIN = "shop_domain"
    NONE = "none"


@dataclass(frozen=True)
class JobTarget:
    """Which shop a job runs for, as named by its arguments."""
    kind: TargetKind
    shop: Optional[Shop] = None
    shop_id: Optional[str] = None
    shop_domain: Optional[str] = None

    @classmethod
    def for_shop(cls, shop: Any) -> "JobTarget":
        if isinstance(shop, Shop):
            return cls(kind=TargetKind.SHOP, shop=shop, shop_id=shop.id)
        return cls(kind=TargetKind.SHOP, shop_id=str(shop))

    @classmethod
    def for_domain(cls, shop_domain: str) -> "JobTarget":
        return cls(kind=TargetKind.SHOP_DOMAIN, shop_domain=shop_domain)

    @classmethod
    def none(cls) -> "JobTarget":
        return cls(kind=TargetKind.NONE)

    @classmethod
    def from_arguments(cls, arguments: Optional[Mapping[str, Any]]) -> "JobTarget":
        """Read the target from a job's argument mapping."""
        if not arguments:
            return cls.none()
        if arguments.get("shop") is not None:
            return cls.for_shop(arguments["shop"])
        if arguments.get("shop_id") is not None:
            return cls.for_shop(arguments["shop_id"])
        if arguments.get("shop_domain"):
            return cls.for_domain(arguments["shop_domain"])
        return cls.none()


class TenantJobContext:
    """
    Per-job tenant context threaded through every call a job makes.

    Holds the database session, the resolved shop and, on first use, the
    shop's API session.
    """

    def __init__(
        self,
        db: Session,
        shop: Shop,
        job_name: str,
        client_factory: Optional[ClientFactory] = None,
    ):
        if shop is None:
            raise ValueError("shop cannot be None")
        self._db = db
        self._shop = shop
        self._job_name = job_name
        self._client_factory = client_factory or ShopifyGraphQLClient
        self._shopify_session: Optional[ShopifySession] = None
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise TenantContextClosedError(
                f"Tenant context for job {self._job_name} used after its scope exited"
            )

    @property
    def db(self) -> Session:
        self._check_open()
        return self._db

    @property
    def shop(self) -> Shop:
        self._check_open()
        return self._shop

    @property
    def shop_id(self) -> str:
        return self.shop.id

    @property
    def job_name(self) -> str:
        return self._job_name

    @property
    def shopify_session(self) -> ShopifySession:
        """Decrypt the shop's credentials on first use."""
        self._check_open()
        if self._shopify_session is None:
            self._shopify_session = self._shop.shopify_session()
        return self._shopify_session

    def graphql_client(self) -> ShopifyGraphQLClient:
        """Build a GraphQL client bound to this shop. Callers close it."""
        return self._client_factory(self.shopify_session)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True
        self._shopify_session = None

    def log_extra(self, **extra) -> dict:
        """Structured logging context for this job and shop."""
        self._check_open()
        return {
            "job_name": self._job_name,
            "shop_id": self._shop.id,
            "shop_domain": self._shop.shopify_domain,
            **extra,
        }

    def __repr__(self) -> str:
        return f"TenantJobContext(job_name={self._job_name!r}, shop_id={self._shop.id!r}, closed={self._closed})"


def _resolve_shop(db: Session, target: JobTarget, job_name: str) -> Optional[Shop]:
    if target.kind is TargetKind.SHOP:
        shop_id = target.shop.id if target.shop is not None else target.shop_id
        shop = db.get(Shop, shop_id) if shop_id else None
        if shop is None:
            logger.error("tenant.shop_not_found", extra={"job_name": job_name, "shop_id": shop_id})
            raise TenantNotFound(f"Shop not found: {shop_id}", shop_id=shop_id)
        return shop

    if target.kind is TargetKind.SHOP_DOMAIN:
        shop = Shop.find_by_domain(db, target.shop_domain)
        if shop is None:
            logger.error(
                "tenant.shop_not_found",
                extra={"job_name": job_name, "shop_domain": target.shop_domain},
            )
            raise TenantNotFound(
                f"{job_name} failed: cannot find shop with domain '{target.shop_domain}'",
                shop_domain=target.shop_domain,
            )
        return shop

    if target.kind is TargetKind.NONE:
        return None

    raise ValueError(f"Unknown job target kind: {target.kind}")


@contextmanager
def tenant_scope(
    db: Session,
    target: JobTarget,
    job_name: str,
    client_factory: Optional[ClientFactory] = None,
) -> Iterator[Optional[TenantJobContext]]:
    """
    Resolve the job's shop and yield a context bound to it.

    Yields None for jobs without a shop target.

    Raises:
        TenantNotFound: If the named shop does not exist
    """
    shop = _resolve_shop(db, target, job_name)
    if shop is None:
        yield None
        return

    ctx = TenantJobContext(db, shop, job_name, client_factory=client_factory)
    try:
        yield ctx
    finally:
        ctx.close()
