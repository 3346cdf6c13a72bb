from app.workers.tasks.payments_reliability import reconcile_pending_entitlements, relay_pending_outbox
from app.workers.tasks.purchase_notifications import send_purchase_confirmation

__all__ = [
    "reconcile_pending_entitlements",
    "relay_pending_outbox",
    "send_purchase_confirmation",
]
