from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Request

from app.api.errors import as_http_exception
from app.core.config import get_settings
from app.services.webhook_signatures import extract_signature
from app.store.purchases.errors import WebhookPayloadError, WebhookSignatureError
from app.store.purchases.service import PurchaseService

from .purchase_notifications_queue import enqueue_purchase_confirmation

router = APIRouter(tags=["payments"])
logger = structlog.get_logger(__name__)


@router.post("/webhooks/payment")
async def payment_webhook(request: Request) -> dict[str, bool]:
    raw_body = await request.body()
    try:
        result = await PurchaseService.handle_payment_webhook(
            raw_body=raw_body,
            signature=extract_signature(request.headers),
            settings=get_settings(),
            now_utc=datetime.now(timezone.utc),
        )
    except (WebhookSignatureError, WebhookPayloadError) as exc:
        raise as_http_exception(exc) from exc

    await enqueue_purchase_confirmation(result.completion)
    return {"received": True}
