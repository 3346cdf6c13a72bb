from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.entitlements import ENTITLEMENT_STATUS_COMPLETED, Entitlement
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.repo.outbox_events_repo import OutboxEventsRepo
from app.db.repo.user_profiles_repo import UserProfilesRepo
from app.store.purchases.errors import EntitlementNotFoundError
from app.store.purchases.types import CompletionResult

from .constants import PURCHASE_COMPLETED_EVENT

logger = structlog.get_logger(__name__)


def _completion_payload(entitlement: Entitlement, *, source: str) -> dict[str, object]:
    return {
        "entitlement_id": str(entitlement.id),
        "user_id": entitlement.user_id,
        "asset_id": str(entitlement.asset_id),
        "asset_kind": entitlement.asset_kind,
        "reference": entitlement.payment_reference,
        "amount": str(entitlement.amount),
        "currency": entitlement.currency,
        "source": source,
    }


async def _try_transition(
    session: AsyncSession,
    *,
    entitlement_id: UUID,
    source: str,
    now_utc: datetime,
) -> Entitlement | None:
    try:
        async with session.begin_nested():
            return await EntitlementsRepo.try_mark_completed(
                session,
                entitlement_id=entitlement_id,
                completed_via=source,
                now_utc=now_utc,
            )
    except IntegrityError:
        # A second paid checkout for an asset the user already owns.
        await EntitlementsRepo.try_mark_failed(session, entitlement_id=entitlement_id, now_utc=now_utc)
        logger.error(
            "purchase_duplicate_payment_detected",
            entitlement_id=str(entitlement_id),
            source=source,
        )
        return None


async def complete_entitlement(
    session: AsyncSession,
    *,
    entitlement_id: UUID,
    source: str,
    notify_sources: Collection[str],
    now_utc: datetime,
) -> CompletionResult:
    completed = await _try_transition(session, entitlement_id=entitlement_id, source=source, now_utc=now_utc)
    if completed is None:
        current = await EntitlementsRepo.get_by_id(session, entitlement_id)
        if current is None:
            raise EntitlementNotFoundError("purchase not found")
        logger.info(
            "purchase_completion_noop",
            entitlement_id=str(entitlement_id),
            status=current.status,
            source=source,
        )
        return CompletionResult(
            entitlement_id=current.id,
            user_id=current.user_id,
            asset_id=current.asset_id,
            status=current.status,
            idempotent_replay=current.status == ENTITLEMENT_STATUS_COMPLETED,
        )

    appended = await UserProfilesRepo.append_entitlement(
        session,
        clerk_id=completed.user_id,
        entitlement_id=completed.id,
    )
    if not appended:
        logger.warning("purchase_profile_append_skipped", entitlement_id=str(completed.id), user_id=completed.user_id)

    outbox_event_id: int | None = None
    if source in notify_sources:
        event = await OutboxEventsRepo.create(
            session,
            event_type=PURCHASE_COMPLETED_EVENT,
            payload=_completion_payload(completed, source=source),
        )
        outbox_event_id = event.id

    logger.info(
        "purchase_completed",
        entitlement_id=str(completed.id),
        user_id=completed.user_id,
        asset_id=str(completed.asset_id),
        asset_kind=completed.asset_kind,
        source=source,
        notification_queued=outbox_event_id is not None,
    )
    return CompletionResult(
        entitlement_id=completed.id,
        user_id=completed.user_id,
        asset_id=completed.asset_id,
        status=ENTITLEMENT_STATUS_COMPLETED,
        idempotent_replay=False,
        outbox_event_id=outbox_event_id,
    )


async def fail_entitlement(
    session: AsyncSession,
    *,
    entitlement_id: UUID,
    reason: str,
    now_utc: datetime,
) -> bool:
    applied = await EntitlementsRepo.try_mark_failed(session, entitlement_id=entitlement_id, now_utc=now_utc)
    logger.info(
        "purchase_failed" if applied else "purchase_failure_noop",
        entitlement_id=str(entitlement_id),
        reason=reason,
    )
    return applied
