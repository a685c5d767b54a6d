"""
Product model mirrored from Shopify.

Products are keyed by (shop_id, shopify_uuid). Deletion from Shopify is a
soft discard so that recordings attached to the product's variants survive
and late webhook deliveries cannot resurrect the product.
"""

import enum
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from soundfy.models.base import Base, ShopScopedMixin, TimestampMixin, generate_uuid, utcnow

logger = logging.getLogger(__name__)


class ProductStatus(str, enum.Enum):
    """Shopify product status values, stored lowercase."""
    ACTIVE = "active"
    ARCHIVED = "archived"
    DRAFT = "draft"
    UNLISTED = "unlisted"


PRODUCT_STATUSES = tuple(status.value for status in ProductStatus)


def normalize_status(value: Any) -> Optional[str]:
    """
    Map a Shopify status ("ACTIVE", "active", None) to the stored value.

    Unknown statuses are dropped to NULL rather than violating the check
    constraint.
    """
    if value is None:
        return None
    status = str(value).strip().lower()
    if status not in PRODUCT_STATUSES:
        logger.warning("Unknown product status ignored", extra={"status": value})
        return None
    return status


class Product(Base, TimestampMixin, ShopScopedMixin):
    """A Shopify product owned by one shop."""

    __tablename__ = "products"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )
    shopify_uuid = Column(
        String(255),
        nullable=False,
        comment="Numeric Shopify product ID"
    )
    title = Column(String(255), nullable=True)
    status = Column(
        String(20),
        nullable=True,
        comment="active, archived, draft or unlisted"
    )
    image_url = Column(Text, nullable=True)
    discarded_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set when the product was deleted in Shopify"
    )

    shop = relationship("Shop", back_populates="products")
    variants = relationship(
        "Variant",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("shop_id", "shopify_uuid", name="uq_products_shop_shopify_uuid"),
        CheckConstraint(
            "status IS NULL OR status IN ('active', 'archived', 'draft', 'unlisted')",
            name="check_products_status",
        ),
        Index("ix_products_shop_discarded", "shop_id", "discarded_at"),
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, shop_id={self.shop_id}, shopify_uuid={self.shopify_uuid})>"

    @property
    def is_discarded(self) -> bool:
        return self.discarded_at is not None

    def discard(self, now: Optional[datetime] = None) -> None:
        """Mark the product and all of its variants as discarded."""
        now = now or utcnow()
        self.discarded_at = now
        for variant in self.variants:
            if variant.discarded_at is None:
                variant.discarded_at = now
