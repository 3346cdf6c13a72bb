from __future__ import annotations

import random
from datetime import datetime, timezone
from uuid import UUID

import structlog
from celery import Task

from app.core.config import get_settings
from app.services.registry import ServiceRegistry
from app.store.purchases.service import PurchaseService
from app.workers.asyncio_runner import run_async_job, with_services
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
TASK_MAX_RETRIES = 6
TASK_RETRY_BACKOFF_MAX_SECONDS = 900
RETRY_JITTER_RATIO = 0.25


def _retry_backoff_seconds(*, next_retry_attempt: int, backoff_max_seconds: int) -> int:
    safe_retry_attempt = max(1, int(next_retry_attempt))
    safe_backoff_max_seconds = max(1, int(backoff_max_seconds))
    base_delay = min(safe_backoff_max_seconds, 30 * 2 ** (safe_retry_attempt - 1))
    max_jitter = max(0, int(base_delay * RETRY_JITTER_RATIO))
    jitter = random.randint(0, max_jitter) if max_jitter > 0 else 0
    return min(safe_backoff_max_seconds, base_delay + jitter)


async def send_purchase_confirmation_async(*, entitlement_id: str, outbox_event_id: int | None) -> str:
    settings = get_settings()

    async def _job(services: ServiceRegistry) -> str:
        return await PurchaseService.deliver_purchase_confirmation(
            entitlement_id=UUID(entitlement_id),
            outbox_event_id=outbox_event_id,
            services=services,
            settings=settings,
            now_utc=datetime.now(timezone.utc),
        )

    outcome = await with_services(_job)
    logger.info(
        "purchase_confirmation_task_finished",
        entitlement_id=entitlement_id,
        outbox_event_id=outbox_event_id,
        outcome=outcome,
    )
    return outcome


@celery_app.task(
    name="app.workers.tasks.purchase_notifications.send_purchase_confirmation",
    bind=True,
    max_retries=TASK_MAX_RETRIES,
    acks_late=True,
    reject_on_worker_lost=True,
)
def send_purchase_confirmation(
    self: Task,
    entitlement_id: str,
    outbox_event_id: int | None = None,
) -> str:
    try:
        return run_async_job(
            send_purchase_confirmation_async(
                entitlement_id=entitlement_id,
                outbox_event_id=outbox_event_id,
            )
        )
    except Exception as exc:
        current_retries = max(0, int(getattr(self.request, "retries", 0)))
        if current_retries >= TASK_MAX_RETRIES:
            logger.exception(
                "purchase_confirmation_failed_final",
                entitlement_id=entitlement_id,
                retries=current_retries,
            )
            raise

        retry_in_seconds = _retry_backoff_seconds(
            next_retry_attempt=current_retries + 1,
            backoff_max_seconds=TASK_RETRY_BACKOFF_MAX_SECONDS,
        )
        logger.warning(
            "purchase_confirmation_retry_scheduled",
            entitlement_id=entitlement_id,
            retry_attempt=current_retries + 1,
            retry_in_seconds=retry_in_seconds,
        )
        raise self.retry(exc=exc, countdown=retry_in_seconds, max_retries=TASK_MAX_RETRIES)
