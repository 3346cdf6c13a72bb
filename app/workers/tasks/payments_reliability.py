from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from app.core.config import get_settings
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.repo.outbox_events_repo import OutboxEventsRepo
from app.db.session import SessionLocal
from app.services.registry import ServiceRegistry
from app.store.purchases.service import PURCHASE_COMPLETED_EVENT, PurchaseService
from app.workers.asyncio_runner import run_async_job, with_services
from app.workers.celery_app import celery_app
from app.workers.tasks.payments_reliability_schedule import configure_payments_reliability_schedule
from app.workers.tasks.purchase_notifications import send_purchase_confirmation

logger = structlog.get_logger(__name__)
OUTBOX_MAX_RELAY_ATTEMPTS = 10


def _enqueue_confirmation(*, entitlement_id: str, outbox_event_id: int | None) -> bool:
    try:
        send_purchase_confirmation.delay(entitlement_id=entitlement_id, outbox_event_id=outbox_event_id)
        return True
    except Exception as exc:
        logger.warning(
            "purchase_confirmation_enqueue_failed",
            entitlement_id=entitlement_id,
            outbox_event_id=outbox_event_id,
            error_type=type(exc).__name__,
        )
        return False


async def reconcile_pending_entitlements_async(
    services: ServiceRegistry,
    *,
    stale_minutes: int | None = None,
    batch_size: int = 100,
) -> dict[str, int]:
    settings = get_settings()
    now_utc = datetime.now(timezone.utc)
    resolved_stale_minutes = stale_minutes if stale_minutes is not None else settings.pending_reconcile_after_minutes
    cutoff = now_utc - timedelta(minutes=resolved_stale_minutes)

    async with SessionLocal.begin() as session:
        candidates = await EntitlementsRepo.list_pending_older_than(
            session,
            older_than_utc=cutoff,
            limit=batch_size,
        )
        candidate_ids = [item.id for item in candidates]

    result = {"examined": len(candidate_ids), "completed": 0, "failed": 0, "still_pending": 0, "skipped": 0}
    for entitlement_id in candidate_ids:
        outcome = await PurchaseService.reconcile_pending_entitlement(
            entitlement_id=entitlement_id,
            gateway=services.gateway,
            settings=settings,
            now_utc=now_utc,
        )
        if outcome.completion is not None and outcome.completion.notification_due:
            _enqueue_confirmation(
                entitlement_id=str(outcome.completion.entitlement_id),
                outbox_event_id=outcome.completion.outbox_event_id,
            )
        bucket = outcome.outcome if outcome.outcome in result else "still_pending"
        result[bucket] += 1

    logger.info("pending_entitlements_reconciliation_finished", **result)
    return result


async def relay_pending_outbox_async(*, stale_minutes: int = 10, batch_size: int = 100) -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        events = await OutboxEventsRepo.list_pending_older_than(
            session,
            event_type=PURCHASE_COMPLETED_EVENT,
            older_than_utc=now_utc - timedelta(minutes=stale_minutes),
            limit=batch_size,
        )
        relayed = 0
        for event in events:
            attempts = await OutboxEventsRepo.record_attempt(
                session,
                event_id=event.id,
                max_attempts=OUTBOX_MAX_RELAY_ATTEMPTS,
                now_utc=now_utc,
            )
            if attempts >= OUTBOX_MAX_RELAY_ATTEMPTS:
                logger.error("purchase_outbox_event_abandoned", outbox_event_id=event.id, attempts=attempts)
                continue
            entitlement_id = event.payload.get("entitlement_id")
            if isinstance(entitlement_id, str) and _enqueue_confirmation(
                entitlement_id=entitlement_id,
                outbox_event_id=event.id,
            ):
                relayed += 1

    result = {"pending": len(events), "relayed": relayed}
    logger.info("purchase_outbox_relay_finished", **result)
    return result


@celery_app.task(name="app.workers.tasks.payments_reliability.reconcile_pending_entitlements")
def reconcile_pending_entitlements(batch_size: int = 100) -> dict[str, int]:
    async def _job(services: ServiceRegistry) -> dict[str, int]:
        return await reconcile_pending_entitlements_async(services, batch_size=batch_size)

    return run_async_job(with_services(_job))


@celery_app.task(name="app.workers.tasks.payments_reliability.relay_pending_outbox")
def relay_pending_outbox(stale_minutes: int = 10, batch_size: int = 100) -> dict[str, int]:
    return run_async_job(relay_pending_outbox_async(stale_minutes=stale_minutes, batch_size=batch_size))


configure_payments_reliability_schedule(celery_app)
