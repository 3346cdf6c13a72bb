from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base

ENTITLEMENT_STATUS_PENDING = "pending"
ENTITLEMENT_STATUS_COMPLETED = "completed"
ENTITLEMENT_STATUS_FAILED = "failed"


class Entitlement(Base):
    __tablename__ = "entitlements"
    __table_args__ = (
        CheckConstraint("asset_kind IN ('song','album')", name="ck_entitlements_asset_kind"),
        CheckConstraint(
            "status IN ('pending','completed','failed')",
            name="ck_entitlements_status",
        ),
        CheckConstraint("amount >= 0", name="ck_entitlements_amount_non_negative"),
        CheckConstraint(
            "completed_via IS NULL OR completed_via IN ('webhook','client_verify','reconciliation')",
            name="ck_entitlements_completed_via",
        ),
        Index("idx_entitlements_user_created", "user_id", "created_at"),
        Index("idx_entitlements_user_asset_status", "user_id", "asset_id", "status"),
        Index("idx_entitlements_status_created", "status", "created_at"),
        Index(
            "idx_entitlements_pending_reconcile",
            "last_reconciled_at",
            "created_at",
            postgresql_where=text("status = 'pending'"),
        ),
        Index(
            "uq_entitlements_completed_user_asset",
            "user_id",
            "asset_id",
            unique=True,
            postgresql_where=text("status = 'completed'"),
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    # No FK: catalog deletion keeps purchase history.
    asset_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    asset_kind: Mapped[str] = mapped_column(String(8), nullable=False)
    payment_reference: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default=text("'NGN'"))
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    completed_via: Mapped[str | None] = mapped_column(String(16), nullable=True)
    notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    purchased_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    revocation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_reconciled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
