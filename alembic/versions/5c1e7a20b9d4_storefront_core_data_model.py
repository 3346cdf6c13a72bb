"""storefront_core_data_model

Revision ID: 5c1e7a20b9d4
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5c1e7a20b9d4"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "catalog_assets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("kind", sa.String(8), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("artist", sa.String(50), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("featured", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("cover_key", sa.String(512), nullable=True),
        sa.Column("audio_key", sa.String(512), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("genre", sa.String(30), nullable=True),
        sa.Column("album_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("track_number", sa.Integer(), nullable=True),
        sa.Column("release_date", sa.Date(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("kind IN ('song','album')", name="ck_catalog_assets_kind"),
        sa.CheckConstraint("price >= 0", name="ck_catalog_assets_price_non_negative"),
        sa.CheckConstraint(
            "kind <> 'song' OR (audio_key IS NOT NULL AND duration_seconds >= 1)",
            name="ck_catalog_assets_song_fields",
        ),
        sa.CheckConstraint(
            "kind <> 'album' OR (audio_key IS NULL AND album_id IS NULL AND track_number IS NULL)",
            name="ck_catalog_assets_album_fields",
        ),
        sa.CheckConstraint(
            "(album_id IS NULL) = (track_number IS NULL)",
            name="ck_catalog_assets_track_position",
        ),
        sa.ForeignKeyConstraint(["album_id"], ["catalog_assets.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_catalog_assets_kind_created", "catalog_assets", ["kind", "created_at"])
    op.create_index("idx_catalog_assets_album_track", "catalog_assets", ["album_id", "track_number"])
    op.create_index(
        "uq_catalog_assets_album_track",
        "catalog_assets",
        ["album_id", "track_number"],
        unique=True,
        postgresql_where=sa.text("album_id IS NOT NULL"),
    )

    op.create_table(
        "entitlements",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("asset_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("asset_kind", sa.String(8), nullable=False),
        sa.Column("payment_reference", sa.String(64), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'NGN'")),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("completed_via", sa.String(16), nullable=True),
        sa.Column("notification_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by", sa.String(64), nullable=True),
        sa.Column("revocation_reason", sa.Text(), nullable=True),
        sa.CheckConstraint("asset_kind IN ('song','album')", name="ck_entitlements_asset_kind"),
        sa.CheckConstraint("status IN ('pending','completed','failed')", name="ck_entitlements_status"),
        sa.CheckConstraint("amount >= 0", name="ck_entitlements_amount_non_negative"),
        sa.CheckConstraint(
            "completed_via IS NULL OR completed_via IN ('webhook','client_verify','reconciliation')",
            name="ck_entitlements_completed_via",
        ),
        sa.UniqueConstraint("payment_reference", name="uq_entitlements_payment_reference"),
    )
    op.create_index("idx_entitlements_user_created", "entitlements", ["user_id", "created_at"])
    op.create_index("idx_entitlements_user_asset_status", "entitlements", ["user_id", "asset_id", "status"])
    op.create_index("idx_entitlements_status_created", "entitlements", ["status", "created_at"])
    op.create_index(
        "uq_entitlements_completed_user_asset",
        "entitlements",
        ["user_id", "asset_id"],
        unique=True,
        postgresql_where=sa.text("status = 'completed'"),
    )

    op.create_table(
        "user_profiles",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("clerk_id", sa.String(64), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("first_name", sa.String(128), nullable=True),
        sa.Column("last_name", sa.String(128), nullable=True),
        sa.Column("role", sa.String(8), nullable=False, server_default=sa.text("'user'")),
        sa.Column(
            "entitlement_ids",
            postgresql.ARRAY(postgresql.UUID(as_uuid=True)),
            nullable=False,
            server_default=sa.text("'{}'::uuid[]"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("role IN ('user','admin')", name="ck_user_profiles_role"),
        sa.UniqueConstraint("clerk_id", name="uq_user_profiles_clerk_id"),
    )
    op.create_index("idx_user_profiles_email", "user_profiles", ["email"])

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('PENDING','SENT','FAILED')", name="ck_outbox_events_status"),
    )
    op.create_index("idx_outbox_events_status_created", "outbox_events", ["status", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_outbox_events_status_created", table_name="outbox_events")
    op.drop_table("outbox_events")

    op.drop_index("idx_user_profiles_email", table_name="user_profiles")
    op.drop_table("user_profiles")

    op.drop_index("uq_entitlements_completed_user_asset", table_name="entitlements")
    op.drop_index("idx_entitlements_status_created", table_name="entitlements")
    op.drop_index("idx_entitlements_user_asset_status", table_name="entitlements")
    op.drop_index("idx_entitlements_user_created", table_name="entitlements")
    op.drop_table("entitlements")

    op.drop_index("uq_catalog_assets_album_track", table_name="catalog_assets")
    op.drop_index("idx_catalog_assets_album_track", table_name="catalog_assets")
    op.drop_index("idx_catalog_assets_kind_created", table_name="catalog_assets")
    op.drop_table("catalog_assets")
