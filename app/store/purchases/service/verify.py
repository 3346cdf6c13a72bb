from __future__ import annotations

from datetime import datetime

import structlog

from app.core.config import Settings
from app.core.errors import StorefrontError
from app.db.models.entitlements import ENTITLEMENT_STATUS_COMPLETED, Entitlement
from app.db.repo.assets_repo import AssetsRepo
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.session import SessionLocal
from app.services.identity import Identity
from app.services.payment_gateway import GatewayVerification, PaystackClient, to_minor_units
from app.store.purchases.errors import (
    AlreadyOwnedError,
    EntitlementClosedError,
    EntitlementNotFoundError,
    PaymentVerificationFailedError,
)
from app.store.purchases.types import VerifyResult

from .completion import complete_entitlement, fail_entitlement
from .constants import COMPLETION_SOURCE_CLIENT_VERIFY, GATEWAY_TERMINAL_FAILURE_STATUSES

logger = structlog.get_logger(__name__)
VERIFICATION_FAILED_MESSAGE = "payment verification failed - contact support if you were charged"
NOT_SETTLED_MESSAGE = "payment is not confirmed yet - try again shortly"


def charge_mismatch(*, amount_minor: int, currency: str, entitlement: Entitlement) -> str | None:
    if amount_minor != to_minor_units(entitlement.amount):
        return "amount_mismatch"
    if currency.upper() != entitlement.currency.upper():
        return "currency_mismatch"
    return None


def verification_mismatch(verification: GatewayVerification, entitlement: Entitlement) -> str | None:
    if not verification.is_success:
        return f"gateway_status_{verification.status or 'unknown'}"
    return charge_mismatch(
        amount_minor=verification.amount_minor,
        currency=verification.currency,
        entitlement=entitlement,
    )


def is_settled(verification: GatewayVerification) -> bool:
    return verification.is_success or verification.status in GATEWAY_TERMINAL_FAILURE_STATUSES


async def verify_client_payment(
    *,
    identity: Identity,
    reference: str,
    gateway: PaystackClient,
    settings: Settings,
    now_utc: datetime,
) -> VerifyResult:
    verification = await gateway.verify(reference)

    failure: StorefrontError | None = None
    result: VerifyResult | None = None
    async with SessionLocal.begin() as session:
        entitlement = await EntitlementsRepo.get_by_reference(session, reference)
        if entitlement is None or entitlement.user_id != identity.subject:
            raise EntitlementNotFoundError("purchase not found")

        mismatch = verification_mismatch(verification, entitlement)
        if mismatch is not None and not is_settled(verification):
            # The charge may still succeed; the webhook or reconciliation settles it.
            logger.info(
                "purchase_verify_not_settled",
                entitlement_id=str(entitlement.id),
                reference=reference,
                gateway_status=verification.status,
            )
            failure = PaymentVerificationFailedError(NOT_SETTLED_MESSAGE)
        elif mismatch is not None:
            await fail_entitlement(session, entitlement_id=entitlement.id, reason=mismatch, now_utc=now_utc)
            logger.warning(
                "purchase_verify_rejected",
                entitlement_id=str(entitlement.id),
                reference=reference,
                reason=mismatch,
            )
            # The failed transition must commit before the error propagates.
            failure = PaymentVerificationFailedError(VERIFICATION_FAILED_MESSAGE)
        else:
            completion = await complete_entitlement(
                session,
                entitlement_id=entitlement.id,
                source=COMPLETION_SOURCE_CLIENT_VERIFY,
                notify_sources=settings.notify_sources,
                now_utc=now_utc,
            )
            if completion.status != ENTITLEMENT_STATUS_COMPLETED:
                owned = await EntitlementsRepo.has_completed_for_asset(
                    session,
                    user_id=entitlement.user_id,
                    asset_id=entitlement.asset_id,
                )
                failure = (
                    AlreadyOwnedError("you already own this item")
                    if owned
                    else EntitlementClosedError("this purchase is no longer active")
                )
            else:
                refreshed = await EntitlementsRepo.get_by_id(session, entitlement.id)
                asset = await AssetsRepo.get_by_id(session, entitlement.asset_id)
                result = VerifyResult(
                    entitlement=refreshed or entitlement,
                    asset=asset,
                    completion=completion,
                )

    if failure is not None:
        raise failure
    assert result is not None
    return result
