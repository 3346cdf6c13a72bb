from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

import structlog

from app.core.config import Settings
from app.db.models.entitlements import ENTITLEMENT_STATUS_PENDING
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.session import SessionLocal
from app.services.payment_gateway import PaymentGatewayError, PaystackClient
from app.store.purchases.types import ReconcileResult

from .completion import complete_entitlement, fail_entitlement
from .constants import COMPLETION_SOURCE_RECONCILIATION
from .verify import is_settled, verification_mismatch

logger = structlog.get_logger(__name__)


async def _mark_checked(entitlement_id: UUID, *, now_utc: datetime) -> None:
    async with SessionLocal.begin() as session:
        await EntitlementsRepo.touch_reconciled(session, entitlement_id=entitlement_id, now_utc=now_utc)


async def reconcile_pending_entitlement(
    *,
    entitlement_id: UUID,
    gateway: PaystackClient,
    settings: Settings,
    now_utc: datetime,
) -> ReconcileResult:
    async with SessionLocal.begin() as session:
        entitlement = await EntitlementsRepo.get_by_id(session, entitlement_id)
        if entitlement is None or entitlement.status != ENTITLEMENT_STATUS_PENDING:
            return ReconcileResult(entitlement_id=entitlement_id, outcome="skipped")
        reference = entitlement.payment_reference
        created_at = entitlement.created_at

    expire_cutoff = now_utc - timedelta(hours=settings.pending_expire_after_hours)
    try:
        verification = await gateway.verify(reference)
    except PaymentGatewayError:
        if created_at > expire_cutoff:
            logger.warning("purchase_reconcile_gateway_unavailable", entitlement_id=str(entitlement_id))
            await _mark_checked(entitlement_id, now_utc=now_utc)
            return ReconcileResult(entitlement_id=entitlement_id, outcome="gateway_unavailable")
        verification = None

    async with SessionLocal.begin() as session:
        entitlement = await EntitlementsRepo.get_by_id(session, entitlement_id)
        if entitlement is None or entitlement.status != ENTITLEMENT_STATUS_PENDING:
            return ReconcileResult(entitlement_id=entitlement_id, outcome="skipped")

        mismatch = verification_mismatch(verification, entitlement) if verification is not None else None
        if verification is not None and mismatch is None:
            completion = await complete_entitlement(
                session,
                entitlement_id=entitlement_id,
                source=COMPLETION_SOURCE_RECONCILIATION,
                notify_sources=settings.notify_sources,
                now_utc=now_utc,
            )
            return ReconcileResult(entitlement_id=entitlement_id, outcome="completed", completion=completion)

        gateway_failed = verification is not None and is_settled(verification)
        if gateway_failed or created_at <= expire_cutoff:
            reason = mismatch if gateway_failed and mismatch else "expired"
            await fail_entitlement(session, entitlement_id=entitlement_id, reason=reason, now_utc=now_utc)
            return ReconcileResult(entitlement_id=entitlement_id, outcome="failed")

        await EntitlementsRepo.touch_reconciled(session, entitlement_id=entitlement_id, now_utc=now_utc)

    return ReconcileResult(entitlement_id=entitlement_id, outcome="still_pending")
