"""
Collection model mirrored from Shopify.
"""

from sqlalchemy import Column, String, UniqueConstraint
from sqlalchemy.orm import relationship

from soundfy.models.base import Base, ShopScopedMixin, TimestampMixin, generate_uuid


class Collection(Base, TimestampMixin, ShopScopedMixin):
    """A Shopify collection owned by one shop."""

    __tablename__ = "collections"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )
    shopify_uuid = Column(
        String(255),
        nullable=False,
        comment="Numeric Shopify collection ID"
    )
    title = Column(String(255), nullable=False)

    shop = relationship("Shop", back_populates="collections")

    __table_args__ = (
        UniqueConstraint("shop_id", "shopify_uuid", name="uq_collections_shop_shopify_uuid"),
    )

    def __repr__(self) -> str:
        return f"<Collection(id={self.id}, shop_id={self.shop_id}, shopify_uuid={self.shopify_uuid})>"
