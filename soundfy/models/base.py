"""
Base mixins for database models.

Provides common functionality:
- TimestampMixin: created_at, updated_at timestamps
- ShopScopedMixin: shop_id foreign key for tenant isolation
- generate_uuid / utcnow: defaults shared with bulk upserts
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String, func
from sqlalchemy.orm import declared_attr

from soundfy.db_base import Base

__all__ = ["Base", "TimestampMixin", "ShopScopedMixin", "generate_uuid", "utcnow"]


def generate_uuid() -> str:
    """Generate a UUID4 string for use as a primary key default."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        comment="Timestamp when record was last updated"
    )


class ShopScopedMixin:
    """
    Mixin that adds shop_id for multi-tenant isolation.

    SECURITY: shop_id is resolved from the job's shop context, NEVER from
    webhook payload fields.
    """

    @declared_attr
    def shop_id(cls):
        return Column(
            String(36),
            ForeignKey("shops.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
            comment="Owning shop"
        )
