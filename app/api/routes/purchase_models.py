from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.db.models.assets import Asset
from app.db.models.entitlements import Entitlement

AssetKind = Literal["song", "album"]


class PurchaseCreateRequest(BaseModel):
    asset_id: UUID
    asset_kind: AssetKind
    amount: Decimal = Field(ge=0)


class PurchaseCreateResponse(BaseModel):
    redirect_url: str
    access_code: str
    reference: str
    entitlement_id: UUID


class PurchaseVerifyRequest(BaseModel):
    reference: str = Field(min_length=1, max_length=64)


class EntitlementView(BaseModel):
    id: UUID
    asset_id: UUID
    asset_kind: str
    status: str
    amount: Decimal
    currency: str
    payment_reference: str
    completed_via: str | None = None
    created_at: datetime
    purchased_at: datetime | None = None


class AssetView(BaseModel):
    id: UUID
    kind: str
    title: str
    artist: str
    price: Decimal
    featured: bool
    duration_seconds: int | None = None
    genre: str | None = None
    album_id: UUID | None = None
    track_number: int | None = None
    release_date: date | None = None
    description: str | None = None


class PurchaseVerifyResponse(BaseModel):
    entitlement: EntitlementView
    asset: AssetView | None = None


class PurchaseListItem(BaseModel):
    entitlement: EntitlementView
    asset: AssetView | None = None


class PurchaseListResponse(BaseModel):
    items: list[PurchaseListItem]
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    pages: int = Field(ge=0)


def entitlement_view(entitlement: Entitlement) -> EntitlementView:
    return EntitlementView(
        id=entitlement.id,
        asset_id=entitlement.asset_id,
        asset_kind=entitlement.asset_kind,
        status=entitlement.status,
        amount=entitlement.amount,
        currency=entitlement.currency,
        payment_reference=entitlement.payment_reference,
        completed_via=entitlement.completed_via,
        created_at=entitlement.created_at,
        purchased_at=entitlement.purchased_at,
    )


def asset_view(asset: Asset | None) -> AssetView | None:
    if asset is None:
        return None
    return AssetView(
        id=asset.id,
        kind=asset.kind,
        title=asset.title,
        artist=asset.artist,
        price=asset.price,
        featured=bool(asset.featured),
        duration_seconds=asset.duration_seconds,
        genre=asset.genre,
        album_id=asset.album_id,
        track_number=asset.track_number,
        release_date=asset.release_date,
        description=asset.description,
    )
