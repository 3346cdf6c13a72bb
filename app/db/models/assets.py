from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base

ASSET_KIND_SONG = "song"
ASSET_KIND_ALBUM = "album"
ASSET_KINDS = (ASSET_KIND_SONG, ASSET_KIND_ALBUM)


class Asset(Base):
    __tablename__ = "catalog_assets"
    __table_args__ = (
        CheckConstraint("kind IN ('song','album')", name="ck_catalog_assets_kind"),
        CheckConstraint("price >= 0", name="ck_catalog_assets_price_non_negative"),
        CheckConstraint(
            "kind <> 'song' OR (audio_key IS NOT NULL AND duration_seconds >= 1)",
            name="ck_catalog_assets_song_fields",
        ),
        CheckConstraint(
            "kind <> 'album' OR (audio_key IS NULL AND album_id IS NULL AND track_number IS NULL)",
            name="ck_catalog_assets_album_fields",
        ),
        CheckConstraint(
            "(album_id IS NULL) = (track_number IS NULL)",
            name="ck_catalog_assets_track_position",
        ),
        Index("idx_catalog_assets_kind_created", "kind", "created_at"),
        Index("idx_catalog_assets_album_track", "album_id", "track_number"),
        Index(
            "uq_catalog_assets_album_track",
            "album_id",
            "track_number",
            unique=True,
            postgresql_where=text("album_id IS NOT NULL"),
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    kind: Mapped[str] = mapped_column(String(8), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    artist: Mapped[str] = mapped_column(String(50), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    cover_key: Mapped[str | None] = mapped_column(String(512), nullable=True)

    audio_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    genre: Mapped[str | None] = mapped_column(String(30), nullable=True)
    album_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("catalog_assets.id", ondelete="CASCADE"),
        nullable=True,
    )
    track_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    release_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @property
    def is_song(self) -> bool:
        return self.kind == ASSET_KIND_SONG

    @property
    def is_album(self) -> bool:
        return self.kind == ASSET_KIND_ALBUM
