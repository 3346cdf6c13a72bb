from celery import Celery

from app.core.config import get_settings

settings = get_settings()

NOTIFICATIONS_QUEUE = "q_notifications"
MAINTENANCE_QUEUE = "q_normal"

celery_app = Celery(
    "music_storefront",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.workers.tasks.purchase_notifications",
        "app.workers.tasks.payments_reliability",
    ],
)

celery_app.conf.update(
    task_default_queue=MAINTENANCE_QUEUE,
    # Confirmation emails must not wait behind reconciliation sweeps.
    task_routes={
        "app.workers.tasks.purchase_notifications.*": {"queue": NOTIFICATIONS_QUEUE},
        "app.workers.tasks.payments_reliability.*": {"queue": MAINTENANCE_QUEUE},
    },
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    result_expires=24 * 3600,
    broker_connection_retry_on_startup=True,
    timezone="Africa/Lagos",
    enable_utc=True,
)
