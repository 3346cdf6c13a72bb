"""entitlements_last_reconciled_at

Revision ID: 7d3b9e41c2a8
Revises: 5c1e7a20b9d4
Create Date: 2026-10-19 15:10:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "7d3b9e41c2a8"
down_revision: str | None = "5c1e7a20b9d4"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.add_column(
        "entitlements",
        sa.Column("last_reconciled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "idx_entitlements_pending_reconcile",
        "entitlements",
        ["last_reconciled_at", "created_at"],
        unique=False,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("idx_entitlements_pending_reconcile", table_name="entitlements")
    op.drop_column("entitlements", "last_reconciled_at")
