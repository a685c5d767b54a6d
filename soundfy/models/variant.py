"""
Variant model with an explicit kind discriminant.

A variant is either a plain Shopify variant or a recording (an audio-bearing
variant). Behaviour differs only through capabilities:

    kind        capabilities
    variant     discardable
    recording   discardable, archivable

Recordings may point at a recordable (single track, album or album track)
through (recordable_type, recordable_id).

INVARIANT: a variant always belongs to the same shop as its product. This
is checked before every insert and update.
"""

import enum
from datetime import datetime
from typing import FrozenSet, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    event,
    select,
)
from sqlalchemy.orm import Session, relationship

from soundfy.database.exceptions import TenantMismatchError
from soundfy.models.base import Base, ShopScopedMixin, TimestampMixin, generate_uuid, utcnow
from soundfy.models.product import Product
from soundfy.models.recordable import Album, AlbumTrack, SingleTrack


class VariantKind(str, enum.Enum):
    VARIANT = "variant"
    RECORDING = "recording"


class RecordableType(str, enum.Enum):
    SINGLE_TRACK = "single_track"
    ALBUM = "album"
    ALBUM_TRACK = "album_track"


class Capability(str, enum.Enum):
    DISCARDABLE = "discardable"
    ARCHIVABLE = "archivable"


KIND_CAPABILITIES = {
    VariantKind.VARIANT: frozenset({Capability.DISCARDABLE}),
    VariantKind.RECORDING: frozenset({Capability.DISCARDABLE, Capability.ARCHIVABLE}),
}

RECORDABLE_MODELS = {
    RecordableType.SINGLE_TRACK: SingleTrack,
    RecordableType.ALBUM: Album,
    RecordableType.ALBUM_TRACK: AlbumTrack,
}


class CapabilityError(ValueError):
    """Raised when an operation needs a capability the variant kind lacks."""
    pass


class Variant(Base, TimestampMixin, ShopScopedMixin):
    """A Shopify variant, optionally carrying a recording."""

    __tablename__ = "variants"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )
    product_id = Column(
        String(36),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    shopify_uuid = Column(
        String(255),
        nullable=False,
        comment="Numeric Shopify variant ID"
    )
    title = Column(String(255), nullable=True)
    kind = Column(
        String(20),
        nullable=False,
        default=VariantKind.VARIANT.value,
        comment="variant or recording"
    )
    recordable_type = Column(String(20), nullable=True)
    recordable_id = Column(String(36), nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)
    discarded_at = Column(DateTime(timezone=True), nullable=True)

    shop = relationship("Shop", back_populates="variants")
    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        UniqueConstraint("shop_id", "shopify_uuid", name="uq_variants_shop_shopify_uuid"),
        CheckConstraint(
            "kind IN ('variant', 'recording')",
            name="check_variants_kind",
        ),
        CheckConstraint(
            "recordable_type IS NULL OR recordable_type IN ('single_track', 'album', 'album_track')",
            name="check_variants_recordable_type",
        ),
        CheckConstraint(
            "kind = 'recording' OR (recordable_type IS NULL AND archived_at IS NULL)",
            name="check_variants_recording_fields",
        ),
        Index("ix_variants_shop_kind", "shop_id", "kind"),
        Index("ix_variants_shop_recordable", "shop_id", "recordable_type", "recordable_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Variant(id={self.id}, kind={self.kind}, "
            f"shop_id={self.shop_id}, shopify_uuid={self.shopify_uuid})>"
        )

    @property
    def variant_kind(self) -> VariantKind:
        return VariantKind(self.kind or VariantKind.VARIANT.value)

    @property
    def capabilities(self) -> FrozenSet[Capability]:
        return KIND_CAPABILITIES[self.variant_kind]

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def _require(self, capability: Capability) -> None:
        if not self.has_capability(capability):
            raise CapabilityError(
                f"{self.variant_kind.value} variants are not {capability.value}"
            )

    @property
    def is_recording(self) -> bool:
        return self.variant_kind is VariantKind.RECORDING

    # Discardable

    @property
    def is_discarded(self) -> bool:
        return self.discarded_at is not None

    def discard(self, now: Optional[datetime] = None) -> None:
        self._require(Capability.DISCARDABLE)
        self.discarded_at = now or utcnow()

    # Archivable

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def archive(self, now: Optional[datetime] = None) -> None:
        self._require(Capability.ARCHIVABLE)
        self.archived_at = now or utcnow()

    def unarchive(self) -> None:
        self._require(Capability.ARCHIVABLE)
        self.archived_at = None

    # Recording

    def make_recording(
        self,
        recordable_type: Optional[RecordableType] = None,
        recordable_id: Optional[str] = None,
        duration_seconds: Optional[int] = None,
    ) -> None:
        """Turn this variant into a recording, optionally attaching a recordable."""
        if (recordable_type is None) != (recordable_id is None):
            raise ValueError("recordable_type and recordable_id must be given together")

        self.kind = VariantKind.RECORDING.value
        self.recordable_type = RecordableType(recordable_type).value if recordable_type else None
        self.recordable_id = recordable_id
        self.duration_seconds = duration_seconds

    def recordable(self, db: Session):
        """Load the recordable this recording points at, if any."""
        if not self.is_recording or not self.recordable_type:
            return None
        model = RECORDABLE_MODELS[RecordableType(self.recordable_type)]
        return (
            db.query(model)
            .filter(model.id == self.recordable_id, model.shop_id == self.shop_id)
            .one_or_none()
        )


@event.listens_for(Variant, "before_insert")
@event.listens_for(Variant, "before_update")
def _check_variant_tenant(mapper, connection, target: Variant) -> None:
    """Reject a variant whose product belongs to another shop."""
    product = target.__dict__.get("product")
    if product is not None and product.shop_id is not None:
        product_shop_id = product.shop_id
    else:
        product_shop_id = connection.scalar(
            select(Product.shop_id).where(Product.id == target.product_id)
        )

    if product_shop_id is not None and product_shop_id != target.shop_id:
        raise TenantMismatchError(
            f"Variant {target.shopify_uuid} belongs to shop {target.shop_id} "
            f"but product {target.product_id} belongs to shop {product_shop_id}"
        )
