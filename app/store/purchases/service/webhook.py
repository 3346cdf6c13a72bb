from __future__ import annotations

import json
from datetime import datetime
from typing import Any

import structlog

from app.core.config import Settings
from app.db.models.entitlements import ENTITLEMENT_STATUS_FAILED
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.session import SessionLocal
from app.services.payment_gateway import to_minor_units
from app.services.webhook_signatures import is_valid_signature
from app.store.purchases.errors import WebhookPayloadError, WebhookSignatureError
from app.store.purchases.types import WebhookResult

from .completion import complete_entitlement, fail_entitlement
from .constants import (
    COMPLETION_SOURCE_WEBHOOK,
    WEBHOOK_EVENT_CHARGE_FAILED,
    WEBHOOK_EVENT_CHARGE_SUCCESS,
)
from .verify import charge_mismatch

logger = structlog.get_logger(__name__)


def parse_webhook_body(raw_body: bytes) -> tuple[str, dict[str, Any]]:
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise WebhookPayloadError("webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise WebhookPayloadError("webhook body must be an object")

    event = payload.get("event")
    data = payload.get("data")
    if not isinstance(event, str) or not event:
        raise WebhookPayloadError("webhook event is missing")
    return event, data if isinstance(data, dict) else {}


def _reference(data: dict[str, Any]) -> str:
    reference = data.get("reference")
    if not isinstance(reference, str) or not reference:
        raise WebhookPayloadError("webhook reference is missing")
    return reference


def _metadata_entitlement_id(data: dict[str, Any]) -> str | None:
    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        return None
    value = metadata.get("entitlement_id") or metadata.get("purchaseId")
    return str(value) if value else None


async def _handle_charge_success(
    data: dict[str, Any],
    *,
    settings: Settings,
    now_utc: datetime,
) -> WebhookResult:
    reference = _reference(data)
    raw_amount = data.get("amount")
    if isinstance(raw_amount, bool) or not isinstance(raw_amount, int):
        raise WebhookPayloadError("webhook amount is missing")
    currency = data.get("currency")
    if not isinstance(currency, str) or not currency:
        raise WebhookPayloadError("webhook currency is missing")
    embedded_id = _metadata_entitlement_id(data)

    async with SessionLocal.begin() as session:
        entitlement = await EntitlementsRepo.get_by_reference(session, reference)
        if entitlement is None:
            logger.warning("payment_webhook_entitlement_not_found", reference=reference)
            return WebhookResult(event=WEBHOOK_EVENT_CHARGE_SUCCESS, outcome="not_found", reference=reference)
        if embedded_id is not None and embedded_id != str(entitlement.id):
            logger.warning(
                "payment_webhook_entitlement_mismatch",
                reference=reference,
                entitlement_id=str(entitlement.id),
                embedded_entitlement_id=embedded_id,
            )
            return WebhookResult(event=WEBHOOK_EVENT_CHARGE_SUCCESS, outcome="mismatch", reference=reference)

        if entitlement.status == ENTITLEMENT_STATUS_FAILED and entitlement.revoked_at is None:
            # Money was taken for a row the ledger already closed; needs a refund or manual grant.
            logger.error(
                "payment_webhook_paid_entitlement_failed",
                reference=reference,
                entitlement_id=str(entitlement.id),
                user_id=entitlement.user_id,
                received_minor=raw_amount,
            )
            return WebhookResult(event=WEBHOOK_EVENT_CHARGE_SUCCESS, outcome="paid_after_failure", reference=reference)

        mismatch = charge_mismatch(amount_minor=raw_amount, currency=currency, entitlement=entitlement)
        if mismatch is not None:
            await fail_entitlement(session, entitlement_id=entitlement.id, reason=mismatch, now_utc=now_utc)
            logger.warning(
                "payment_webhook_charge_mismatch",
                reference=reference,
                reason=mismatch,
                expected_minor=to_minor_units(entitlement.amount),
                received_minor=raw_amount,
                expected_currency=entitlement.currency,
                received_currency=currency,
            )
            return WebhookResult(event=WEBHOOK_EVENT_CHARGE_SUCCESS, outcome=mismatch, reference=reference)

        completion = await complete_entitlement(
            session,
            entitlement_id=entitlement.id,
            source=COMPLETION_SOURCE_WEBHOOK,
            notify_sources=settings.notify_sources,
            now_utc=now_utc,
        )

    outcome = "completed" if not completion.idempotent_replay and completion.status == "completed" else "noop"
    return WebhookResult(
        event=WEBHOOK_EVENT_CHARGE_SUCCESS,
        outcome=outcome,
        reference=reference,
        completion=completion,
    )


async def _handle_charge_failed(data: dict[str, Any], *, now_utc: datetime) -> WebhookResult:
    reference = _reference(data)
    async with SessionLocal.begin() as session:
        entitlement = await EntitlementsRepo.get_by_reference(session, reference)
        if entitlement is None:
            logger.warning("payment_webhook_entitlement_not_found", reference=reference)
            return WebhookResult(event=WEBHOOK_EVENT_CHARGE_FAILED, outcome="not_found", reference=reference)
        applied = await fail_entitlement(
            session,
            entitlement_id=entitlement.id,
            reason="gateway_charge_failed",
            now_utc=now_utc,
        )
    return WebhookResult(
        event=WEBHOOK_EVENT_CHARGE_FAILED,
        outcome="failed" if applied else "noop",
        reference=reference,
    )


async def handle_payment_webhook(
    *,
    raw_body: bytes,
    signature: str | None,
    settings: Settings,
    now_utc: datetime,
) -> WebhookResult:
    # Nothing is parsed or read from the ledger before the signature matches.
    if not is_valid_signature(
        secret=settings.paystack_secret_key,
        raw_body=raw_body,
        received_signature=signature,
    ):
        logger.warning("payment_webhook_invalid_signature", signature_present=bool(signature))
        raise WebhookSignatureError("invalid webhook signature")

    event, data = parse_webhook_body(raw_body)
    if event == WEBHOOK_EVENT_CHARGE_SUCCESS:
        result = await _handle_charge_success(data, settings=settings, now_utc=now_utc)
    elif event == WEBHOOK_EVENT_CHARGE_FAILED:
        result = await _handle_charge_failed(data, now_utc=now_utc)
    else:
        logger.info("payment_webhook_event_ignored", webhook_event=event)
        result = WebhookResult(event=event, outcome="ignored")

    logger.info(
        "payment_webhook_processed",
        webhook_event=result.event,
        outcome=result.outcome,
        reference=result.reference,
    )
    return result
