"""
Recordables: what a recording variant represents.

A recording points at one of these through (recordable_type, recordable_id).
"""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from soundfy.models.base import Base, ShopScopedMixin, TimestampMixin, generate_uuid


class SingleTrack(Base, TimestampMixin, ShopScopedMixin):
    """A standalone track sold as one variant."""

    __tablename__ = "single_tracks"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    def __repr__(self) -> str:
        return f"<SingleTrack(id={self.id}, shop_id={self.shop_id})>"


class Album(Base, TimestampMixin, ShopScopedMixin):
    """An album sold as one variant; its tracks are ordered by position."""

    __tablename__ = "albums"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    tracks = relationship(
        "AlbumTrack",
        back_populates="album",
        order_by="AlbumTrack.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Album(id={self.id}, shop_id={self.shop_id})>"


class AlbumTrack(Base, TimestampMixin, ShopScopedMixin):
    """One track of an album."""

    __tablename__ = "album_tracks"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    album_id = Column(
        String(36),
        ForeignKey("albums.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)

    album = relationship("Album", back_populates="tracks")

    __table_args__ = (
        UniqueConstraint("shop_id", "album_id", "position", name="uq_album_tracks_position"),
    )

    def __repr__(self) -> str:
        return f"<AlbumTrack(id={self.id}, album_id={self.album_id}, position={self.position})>"
