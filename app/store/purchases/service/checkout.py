from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

import structlog

from app.catalog.errors import AssetKindMismatchError, AssetNotFoundError
from app.core.config import Settings
from app.core.payment_references import generate_payment_reference
from app.db.models.entitlements import ENTITLEMENT_STATUS_PENDING, Entitlement
from app.db.repo.assets_repo import AssetsRepo
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.repo.user_profiles_repo import UserProfilesRepo
from app.db.session import SessionLocal
from app.services.identity import ClerkAdminClient, Identity
from app.services.payment_gateway import PaystackClient, to_minor_units
from app.store.purchases.errors import AlreadyOwnedError, AmountMismatchError, PurchaseRecipientMissingError
from app.store.purchases.types import CheckoutResult

logger = structlog.get_logger(__name__)


async def _resolve_payer(identity: Identity, clerk_admin: ClerkAdminClient | None) -> Identity:
    if identity.email or clerk_admin is None:
        return identity
    remote = await clerk_admin.get_user(identity.subject)
    if remote is None:
        return identity
    return Identity(
        subject=identity.subject,
        role=identity.role,
        email=remote.email,
        first_name=identity.first_name or remote.first_name,
        last_name=identity.last_name or remote.last_name,
    )


async def start_checkout(
    *,
    identity: Identity,
    asset_id: UUID,
    asset_kind: str,
    amount: Decimal,
    gateway: PaystackClient,
    settings: Settings,
    now_utc: datetime,
    clerk_admin: ClerkAdminClient | None = None,
) -> CheckoutResult:
    payer = await _resolve_payer(identity, clerk_admin)
    if not payer.email:
        raise PurchaseRecipientMissingError("an email address is required to pay")

    async with SessionLocal.begin() as session:
        asset = await AssetsRepo.get_by_id(session, asset_id)
        if asset is None:
            raise AssetNotFoundError("item not found")
        if asset.kind != asset_kind:
            raise AssetKindMismatchError(f"item is a {asset.kind}, not a {asset_kind}")
        if Decimal(amount) != asset.price:
            raise AmountMismatchError("quoted amount does not match the item price")
        if await EntitlementsRepo.has_completed_for_asset(session, user_id=payer.subject, asset_id=asset.id):
            raise AlreadyOwnedError("you already own this item")

        await UserProfilesRepo.ensure_exists(
            session,
            clerk_id=payer.subject,
            email=payer.email,
            first_name=payer.first_name,
            last_name=payer.last_name,
            role=payer.role,
            now_utc=now_utc,
        )
        entitlement = await EntitlementsRepo.create(
            session,
            entitlement=Entitlement(
                id=uuid4(),
                user_id=payer.subject,
                asset_id=asset.id,
                asset_kind=asset.kind,
                payment_reference=generate_payment_reference(now_utc),
                amount=asset.price,
                currency=settings.payment_currency,
                status=ENTITLEMENT_STATUS_PENDING,
                notification_sent=False,
                created_at=now_utc,
                updated_at=now_utc,
            ),
        )
        entitlement_id = entitlement.id
        reference = entitlement.payment_reference
        asset_title = asset.title
        amount_minor = to_minor_units(asset.price)

    # The gateway call runs outside any transaction; a failure removes the pending row.
    try:
        checkout = await gateway.initialize(
            email=payer.email,
            amount_minor=amount_minor,
            reference=reference,
            metadata={
                "user_id": payer.subject,
                "asset_id": str(asset_id),
                "asset_kind": asset_kind,
                "entitlement_id": str(entitlement_id),
                "asset_title": asset_title,
                "customer_name": payer.display_name,
            },
            callback_url=settings.payment_callback_url,
            cancel_url=settings.payment_cancel_url,
        )
    except Exception as exc:
        async with SessionLocal.begin() as session:
            removed = await EntitlementsRepo.delete_pending(session, entitlement_id)
        logger.warning(
            "purchase_checkout_gateway_failed",
            entitlement_id=str(entitlement_id),
            reference=reference,
            pending_removed=removed,
            error_type=type(exc).__name__,
        )
        raise

    logger.info(
        "purchase_checkout_started",
        entitlement_id=str(entitlement_id),
        user_id=payer.subject,
        asset_id=str(asset_id),
        asset_kind=asset_kind,
        reference=reference,
    )
    return CheckoutResult(
        entitlement_id=entitlement_id,
        reference=reference,
        redirect_url=checkout.authorization_url,
        access_code=checkout.access_code,
    )
