from __future__ import annotations

COMPLETION_SOURCE_WEBHOOK = "webhook"
COMPLETION_SOURCE_CLIENT_VERIFY = "client_verify"
COMPLETION_SOURCE_RECONCILIATION = "reconciliation"

PURCHASE_COMPLETED_EVENT = "purchase_completed"

WEBHOOK_EVENT_CHARGE_SUCCESS = "charge.success"
WEBHOOK_EVENT_CHARGE_FAILED = "charge.failed"

GATEWAY_TERMINAL_FAILURE_STATUSES = frozenset({"failed", "reversed"})
