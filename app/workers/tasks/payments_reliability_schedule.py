from __future__ import annotations


def configure_payments_reliability_schedule(celery_app) -> None:
    celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
    celery_app.conf.beat_schedule.update(
        {
            "reconcile-pending-entitlements-every-10-minutes": {
                "task": "app.workers.tasks.payments_reliability.reconcile_pending_entitlements",
                "schedule": 600.0,
                "options": {"queue": "q_normal"},
            },
            "relay-pending-outbox-every-5-minutes": {
                "task": "app.workers.tasks.payments_reliability.relay_pending_outbox",
                "schedule": 300.0,
                "options": {"queue": "q_normal"},
            },
        }
    )
