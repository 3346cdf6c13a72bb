from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_identity, get_services
from app.api.errors import as_http_exception
from app.core.config import get_settings
from app.core.errors import StorefrontError
from app.db.session import SessionLocal
from app.services.identity import Identity
from app.services.registry import ServiceRegistry
from app.store.purchases.service import PurchaseService

from .purchase_models import (
    PurchaseCreateRequest,
    PurchaseCreateResponse,
    PurchaseListItem,
    PurchaseListResponse,
    PurchaseVerifyRequest,
    PurchaseVerifyResponse,
    asset_view,
    entitlement_view,
)
from .purchase_notifications_queue import enqueue_purchase_confirmation

router = APIRouter(tags=["purchases"])


@router.post("/purchase", response_model=PurchaseCreateResponse)
async def create_purchase(
    payload: PurchaseCreateRequest,
    identity: Identity = Depends(get_identity),
    services: ServiceRegistry = Depends(get_services),
) -> PurchaseCreateResponse:
    try:
        result = await PurchaseService.start_checkout(
            identity=identity,
            asset_id=payload.asset_id,
            asset_kind=payload.asset_kind,
            amount=payload.amount,
            gateway=services.gateway,
            settings=get_settings(),
            now_utc=datetime.now(timezone.utc),
            clerk_admin=services.clerk_admin,
        )
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc

    return PurchaseCreateResponse(
        redirect_url=result.redirect_url,
        access_code=result.access_code,
        reference=result.reference,
        entitlement_id=result.entitlement_id,
    )


@router.get("/purchase", response_model=PurchaseListResponse)
async def list_purchases(
    identity: Identity = Depends(get_identity),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status: Literal["pending", "completed", "failed"] | None = Query(default=None),
    asset_kind: Literal["song", "album"] | None = Query(default=None),
) -> PurchaseListResponse:
    async with SessionLocal.begin() as session:
        listing = await PurchaseService.list_user_purchases(
            session,
            user_id=identity.subject,
            status=status,
            asset_kind=asset_kind,
            page=page,
            limit=limit,
        )

    return PurchaseListResponse(
        items=[
            PurchaseListItem(entitlement=entitlement_view(entitlement), asset=asset_view(asset))
            for entitlement, asset in listing.items
        ],
        total=listing.total,
        page=listing.page,
        limit=listing.limit,
        pages=listing.pages,
    )


@router.put("/purchase", response_model=PurchaseVerifyResponse)
async def verify_purchase(
    payload: PurchaseVerifyRequest,
    identity: Identity = Depends(get_identity),
    services: ServiceRegistry = Depends(get_services),
) -> PurchaseVerifyResponse:
    try:
        result = await PurchaseService.verify_client_payment(
            identity=identity,
            reference=payload.reference.strip(),
            gateway=services.gateway,
            settings=get_settings(),
            now_utc=datetime.now(timezone.utc),
        )
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc

    await enqueue_purchase_confirmation(result.completion)
    return PurchaseVerifyResponse(
        entitlement=entitlement_view(result.entitlement),
        asset=asset_view(result.asset),
    )
