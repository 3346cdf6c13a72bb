from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

import structlog

from app.core.config import Settings
from app.db.models.assets import ASSET_KIND_ALBUM, Asset
from app.db.models.entitlements import Entitlement
from app.db.models.user_profiles import UserProfile
from app.db.repo.assets_repo import AssetsRepo
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.repo.outbox_events_repo import OutboxEventsRepo
from app.db.repo.user_profiles_repo import UserProfilesRepo
from app.db.session import SessionLocal
from app.services.identity import IdentityProviderError
from app.services.mailer import MailDeliveryError, MailMessage
from app.services.registry import ServiceRegistry
from app.store.delivery import DeliveryLinkError, DeliveryLocatorIssuer, DownloadLink

logger = structlog.get_logger(__name__)


def _format_hours(seconds: int) -> str:
    hours = max(1, seconds // 3600)
    return f"{hours} hour" if hours == 1 else f"{hours} hours"


def build_confirmation_message(
    *,
    recipient: str,
    customer_name: str,
    asset: Asset,
    entitlement: Entitlement,
    links: Sequence[DownloadLink],
    expires_in: int,
) -> MailMessage:
    lines = [
        f"Hi {customer_name},",
        "",
        f"Thank you for purchasing \"{asset.title}\" by {asset.artist}.",
        f"Amount: {entitlement.amount} {entitlement.currency}",
        f"Reference: {entitlement.payment_reference}",
        "",
        f"Your download links (valid for {_format_hours(expires_in)}):",
    ]
    lines.extend(f"- {link.title}: {link.url}" for link in links)
    lines.extend(["", "You can stream and re-download your music any time from your library."])
    return MailMessage(to=recipient, subject=f"Your purchase: {asset.title}", text="\n".join(lines))


def build_admin_message(*, recipient: str, customer: str, asset: Asset, entitlement: Entitlement) -> MailMessage:
    text = "\n".join(
        [
            "New purchase completed.",
            f"Customer: {customer}",
            f"Item: {asset.title} ({asset.kind})",
            f"Amount: {entitlement.amount} {entitlement.currency}",
            f"Reference: {entitlement.payment_reference}",
            f"Completed via: {entitlement.completed_via}",
        ]
    )
    return MailMessage(to=recipient, subject=f"New sale: {asset.title}", text=text)


async def _close_outbox_event(outbox_event_id: int | None, *, now_utc: datetime) -> None:
    if outbox_event_id is None:
        return
    async with SessionLocal.begin() as session:
        await OutboxEventsRepo.mark_sent(session, event_id=outbox_event_id, now_utc=now_utc)


async def deliver_purchase_confirmation(
    *,
    entitlement_id: UUID,
    outbox_event_id: int | None,
    services: ServiceRegistry,
    settings: Settings,
    now_utc: datetime,
) -> str:
    mailer = services.mailer
    if mailer is None:
        logger.warning("purchase_notification_mail_disabled", entitlement_id=str(entitlement_id))
        await _close_outbox_event(outbox_event_id, now_utc=now_utc)
        return "mail_disabled"

    entitlement: Entitlement | None = None
    asset: Asset | None = None
    profile: UserProfile | None = None
    songs: list[Asset] = []
    async with SessionLocal.begin() as session:
        claimed = await EntitlementsRepo.try_claim_notification(session, entitlement_id=entitlement_id)
        if claimed:
            entitlement = await EntitlementsRepo.get_by_id(session, entitlement_id)
        if entitlement is not None:
            asset = await AssetsRepo.get_by_id(session, entitlement.asset_id)
            profile = await UserProfilesRepo.get_by_clerk_id(session, entitlement.user_id)
        if asset is not None:
            songs = (
                await AssetsRepo.list_album_members(session, asset.id)
                if asset.kind == ASSET_KIND_ALBUM
                else [asset]
            )

    if entitlement is None:
        await _close_outbox_event(outbox_event_id, now_utc=now_utc)
        return "not_claimed"
    if asset is None:
        logger.warning("purchase_notification_asset_missing", entitlement_id=str(entitlement_id))
        await _close_outbox_event(outbox_event_id, now_utc=now_utc)
        return "asset_missing"

    issuer = DeliveryLocatorIssuer.from_settings(settings, storage=services.storage)
    try:
        recipient = profile.email if profile is not None else None
        customer_name = ""
        if profile is not None:
            customer_name = " ".join(part for part in (profile.first_name, profile.last_name) if part)
        if recipient is None and services.clerk_admin is not None:
            remote = await services.clerk_admin.get_user(entitlement.user_id)
            if remote is not None:
                recipient = remote.email
                customer_name = customer_name or remote.display_name
        if recipient is None:
            logger.warning("purchase_notification_no_recipient", entitlement_id=str(entitlement_id))
            await _close_outbox_event(outbox_event_id, now_utc=now_utc)
            return "no_recipient"

        links = await issuer.issue_album_download_links(songs)
        await mailer.send(
            build_confirmation_message(
                recipient=recipient,
                customer_name=customer_name or recipient,
                asset=asset,
                entitlement=entitlement,
                links=links,
                expires_in=issuer.download_ttl_seconds,
            )
        )
    except (DeliveryLinkError, MailDeliveryError, IdentityProviderError) as exc:
        async with SessionLocal.begin() as session:
            await EntitlementsRepo.release_notification_claim(session, entitlement_id=entitlement_id)
        logger.warning(
            "purchase_notification_failed",
            entitlement_id=str(entitlement_id),
            error_type=type(exc).__name__,
        )
        raise

    if settings.admin_notification_email:
        try:
            await mailer.send(
                build_admin_message(
                    recipient=settings.admin_notification_email,
                    customer=f"{customer_name or recipient} <{recipient}>",
                    asset=asset,
                    entitlement=entitlement,
                )
            )
        except MailDeliveryError:
            logger.warning("purchase_admin_notification_failed", entitlement_id=str(entitlement_id))

    await _close_outbox_event(outbox_event_id, now_utc=now_utc)
    logger.info(
        "purchase_notification_sent",
        entitlement_id=str(entitlement_id),
        links_total=len(links),
    )
    return "sent"
