from __future__ import annotations

from .checkout import start_checkout
from .completion import complete_entitlement, fail_entitlement
from .constants import (
    COMPLETION_SOURCE_CLIENT_VERIFY,
    COMPLETION_SOURCE_RECONCILIATION,
    COMPLETION_SOURCE_WEBHOOK,
    PURCHASE_COMPLETED_EVENT,
)
from .listing import PurchaseListing, list_user_purchases
from .notifications import deliver_purchase_confirmation
from .reconcile import reconcile_pending_entitlement
from .revocation import DEFAULT_REVOCATION_REASON, RevocationResult, revoke_access
from .verify import verify_client_payment
from .webhook import handle_payment_webhook, parse_webhook_body


class PurchaseService:
    start_checkout = staticmethod(start_checkout)
    complete_entitlement = staticmethod(complete_entitlement)
    fail_entitlement = staticmethod(fail_entitlement)
    verify_client_payment = staticmethod(verify_client_payment)
    handle_payment_webhook = staticmethod(handle_payment_webhook)
    parse_webhook_body = staticmethod(parse_webhook_body)
    reconcile_pending_entitlement = staticmethod(reconcile_pending_entitlement)
    deliver_purchase_confirmation = staticmethod(deliver_purchase_confirmation)
    list_user_purchases = staticmethod(list_user_purchases)
    revoke_access = staticmethod(revoke_access)


__all__ = [
    "COMPLETION_SOURCE_CLIENT_VERIFY",
    "COMPLETION_SOURCE_RECONCILIATION",
    "COMPLETION_SOURCE_WEBHOOK",
    "DEFAULT_REVOCATION_REASON",
    "PURCHASE_COMPLETED_EVENT",
    "PurchaseListing",
    "PurchaseService",
    "RevocationResult",
]
