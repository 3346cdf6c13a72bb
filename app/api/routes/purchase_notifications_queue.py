from __future__ import annotations

import asyncio

import structlog

from app.core.config import get_settings
from app.store.purchases.types import CompletionResult
from app.workers.tasks.purchase_notifications import send_purchase_confirmation

logger = structlog.get_logger(__name__)


def _is_celery_task(task_obj: object) -> bool:
    return type(task_obj).__module__.startswith("celery.")


async def enqueue_purchase_confirmation(completion: CompletionResult | None) -> bool:
    if completion is None or not completion.notification_due:
        return False

    timeout_seconds = max(1, int(get_settings().task_enqueue_timeout_ms)) / 1000.0
    entitlement_id = str(completion.entitlement_id)

    def enqueue_call() -> object:
        return send_purchase_confirmation.delay(
            entitlement_id=entitlement_id,
            outbox_event_id=completion.outbox_event_id,
        )

    try:
        if _is_celery_task(send_purchase_confirmation):
            await asyncio.wait_for(asyncio.to_thread(enqueue_call), timeout=timeout_seconds)
        else:
            enqueue_call()
        return True
    except asyncio.TimeoutError:
        logger.warning(
            "purchase_confirmation_enqueue_timeout",
            entitlement_id=entitlement_id,
            enqueue_timeout_seconds=timeout_seconds,
        )
        return False
    except Exception as exc:
        # The outbox relay picks the event up later.
        logger.warning(
            "purchase_confirmation_enqueue_failed",
            entitlement_id=entitlement_id,
            error_type=type(exc).__name__,
        )
        return False
