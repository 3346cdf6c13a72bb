from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.entitlements_repo import EntitlementsRepo

logger = structlog.get_logger(__name__)
DEFAULT_REVOCATION_REASON = "Access revoked by admin"


@dataclass(slots=True)
class RevocationResult:
    modified_count: int
    revoked_at: datetime


async def revoke_access(
    session: AsyncSession,
    *,
    admin_id: str,
    target_user_id: str,
    asset_id: UUID,
    reason: str | None,
    now_utc: datetime,
) -> RevocationResult:
    resolved_reason = (reason or "").strip() or DEFAULT_REVOCATION_REASON
    modified = await EntitlementsRepo.revoke_completed(
        session,
        user_id=target_user_id,
        asset_id=asset_id,
        revoked_by=admin_id,
        reason=resolved_reason,
        now_utc=now_utc,
    )
    logger.info(
        "purchase_access_revoked",
        admin_id=admin_id,
        target_user_id=target_user_id,
        asset_id=str(asset_id),
        modified_count=modified,
    )
    return RevocationResult(modified_count=modified, revoked_at=now_utc)
