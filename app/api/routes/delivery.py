from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from app.api.deps import get_identity, get_optional_identity, get_services
from app.api.errors import as_http_exception
from app.catalog.errors import AssetKindMismatchError
from app.core.config import get_settings
from app.core.errors import StorefrontError
from app.db.models.assets import ASSET_KIND_ALBUM, Asset
from app.db.models.entitlements import ENTITLEMENT_STATUS_COMPLETED
from app.db.repo.assets_repo import AssetsRepo
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.session import SessionLocal
from app.services.identity import Identity
from app.services.registry import ServiceRegistry
from app.services.storage import ObjectInfo
from app.store.access import AccessGate
from app.store.access.errors import AlbumNotStreamableError, FileMissingError, PurchaseRequiredError
from app.store.delivery import DeliveryLocatorIssuer
from app.store.purchases.service import PurchaseService

router = APIRouter(tags=["delivery"])
logger = structlog.get_logger(__name__)


class StreamResponse(BaseModel):
    stream_url: str
    expires_in: int
    content_type: str | None = None
    content_length: int | None = None
    duration_seconds: int | None = None
    title: str
    artist: str


class DownloadRequest(BaseModel):
    asset_kind: Literal["song", "album"]
    entitlement_id: UUID | None = None


class DownloadLinkView(BaseModel):
    song_id: UUID
    title: str
    artist: str
    filename: str
    download_url: str
    expires_in: int
    track_number: int | None = None


class DownloadResponse(BaseModel):
    asset_id: UUID
    asset_kind: str
    title: str
    download_links: list[DownloadLinkView]
    expires_in: int


class RevokeRequest(BaseModel):
    target_user_id: str = Field(min_length=1, max_length=64)
    reason: str | None = Field(default=None, max_length=500)


class RevokeResponse(BaseModel):
    modified_count: int
    revoked_at: datetime


async def _authorized_song(identity: Identity | None, asset_id: UUID) -> Asset:
    async with SessionLocal.begin() as session:
        asset = await AccessGate.authorize(session, identity=identity, asset_id=asset_id)
    if asset.kind == ASSET_KIND_ALBUM:
        raise AlbumNotStreamableError("albums are streamed per song")
    if not asset.audio_key:
        raise FileMissingError("audio file not found")
    return asset


async def _stream_locator(
    identity: Identity | None,
    asset_id: UUID,
    services: ServiceRegistry,
    byte_range: str | None,
) -> tuple[Asset, str, int, ObjectInfo]:
    song = await _authorized_song(identity, asset_id)
    assert song.audio_key is not None
    info = await services.storage.head_object(key=song.audio_key)
    if info is None:
        logger.warning("delivery_audio_object_missing", asset_id=str(asset_id))
        raise FileMissingError("audio file not found")
    issuer = DeliveryLocatorIssuer.from_settings(get_settings(), storage=services.storage)
    locator = await issuer.issue_stream_url(song.audio_key, byte_range=byte_range)
    return song, locator.url, locator.expires_in, info


@router.get("/stream/{asset_id}")
async def stream_redirect(
    asset_id: UUID,
    request: Request,
    identity: Identity | None = Depends(get_optional_identity),
    services: ServiceRegistry = Depends(get_services),
) -> RedirectResponse:
    try:
        _, url, _, _ = await _stream_locator(identity, asset_id, services, request.headers.get("Range"))
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.post("/stream/{asset_id}", response_model=StreamResponse)
async def stream_metadata(
    asset_id: UUID,
    request: Request,
    identity: Identity | None = Depends(get_optional_identity),
    services: ServiceRegistry = Depends(get_services),
) -> StreamResponse:
    try:
        song, url, expires_in, info = await _stream_locator(
            identity, asset_id, services, request.headers.get("Range")
        )
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc
    return StreamResponse(
        stream_url=url,
        expires_in=expires_in,
        content_type=info.content_type,
        content_length=info.content_length,
        duration_seconds=song.duration_seconds,
        title=song.title,
        artist=song.artist,
    )


async def _check_entitlement_reference(
    *,
    user_id: str,
    asset: Asset,
    entitlement_id: UUID,
) -> None:
    async with SessionLocal.begin() as session:
        entitlement = await EntitlementsRepo.get_by_id(session, entitlement_id)
    covered_ids = {asset.id, asset.album_id}
    if (
        entitlement is None
        or entitlement.user_id != user_id
        or entitlement.status != ENTITLEMENT_STATUS_COMPLETED
        or entitlement.asset_id not in covered_ids
    ):
        raise PurchaseRequiredError("access denied - purchase required")


@router.post("/download/{asset_id}", response_model=DownloadResponse)
async def download_links(
    asset_id: UUID,
    payload: DownloadRequest,
    identity: Identity = Depends(get_identity),
    services: ServiceRegistry = Depends(get_services),
) -> DownloadResponse:
    issuer = DeliveryLocatorIssuer.from_settings(get_settings(), storage=services.storage)
    try:
        async with SessionLocal.begin() as session:
            asset = await AccessGate.authorize(session, identity=identity, asset_id=asset_id)
            if asset.kind != payload.asset_kind:
                raise AssetKindMismatchError(f"asset is a {asset.kind}, not a {payload.asset_kind}")
            songs = (
                await AssetsRepo.list_album_members(session, asset.id)
                if asset.kind == ASSET_KIND_ALBUM
                else [asset]
            )
        if payload.entitlement_id is not None:
            await _check_entitlement_reference(
                user_id=identity.subject,
                asset=asset,
                entitlement_id=payload.entitlement_id,
            )
        if not songs:
            raise FileMissingError("album has no songs")
        links = await issuer.issue_album_download_links(songs)
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc

    logger.info(
        "delivery_download_links_issued",
        user_id=identity.subject,
        asset_id=str(asset_id),
        links_total=len(links),
    )
    return DownloadResponse(
        asset_id=asset.id,
        asset_kind=asset.kind,
        title=asset.title,
        download_links=[DownloadLinkView(**link.as_dict()) for link in links],
        expires_in=issuer.download_ttl_seconds,
    )


@router.delete("/download/{asset_id}", response_model=RevokeResponse)
async def revoke_download_access(
    asset_id: UUID,
    payload: RevokeRequest,
    identity: Identity = Depends(get_identity),
) -> RevokeResponse:
    try:
        admin = AccessGate.require_admin(identity)
        async with SessionLocal.begin() as session:
            result = await PurchaseService.revoke_access(
                session,
                admin_id=admin.subject,
                target_user_id=payload.target_user_id,
                asset_id=asset_id,
                reason=payload.reason,
                now_utc=datetime.now(timezone.utc),
            )
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc
    return RevokeResponse(modified_count=result.modified_count, revoked_at=result.revoked_at)
