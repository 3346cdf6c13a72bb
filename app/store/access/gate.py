from __future__ import annotations

from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.catalog.errors import AssetNotFoundError
from app.core.errors import AuthenticationRequiredError
from app.db.models.assets import ASSET_KIND_ALBUM, ASSET_KIND_SONG, Asset
from app.db.repo.assets_repo import AssetsRepo
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.services.identity import Identity
from app.store.access.errors import AdminRequiredError, PurchaseRequiredError

logger = structlog.get_logger(__name__)


async def has_entitlement(session: AsyncSession, *, user_id: str, asset: Asset) -> bool:
    if asset.kind == ASSET_KIND_SONG:
        return await EntitlementsRepo.has_access(
            session,
            user_id=user_id,
            song_id=asset.id,
            album_id=asset.album_id,
        )
    if asset.kind == ASSET_KIND_ALBUM:
        return await EntitlementsRepo.has_access(
            session,
            user_id=user_id,
            song_id=None,
            album_id=asset.id,
        )
    return False


async def can_access(session: AsyncSession, *, user_id: str, asset_id: UUID) -> bool:
    asset = await AssetsRepo.get_by_id(session, asset_id)
    if asset is None:
        return False
    return await has_entitlement(session, user_id=user_id, asset=asset)


async def authorize(session: AsyncSession, *, identity: Identity | None, asset_id: UUID) -> Asset:
    if identity is None:
        raise AuthenticationRequiredError("sign in required")

    asset = await AssetsRepo.get_by_id(session, asset_id)
    if asset is None:
        raise AssetNotFoundError("asset not found")

    if not await has_entitlement(session, user_id=identity.subject, asset=asset):
        logger.info(
            "access_denied_purchase_required",
            user_id=identity.subject,
            asset_id=str(asset_id),
            asset_kind=asset.kind,
        )
        raise PurchaseRequiredError("access denied - purchase required")
    return asset


def require_admin(identity: Identity | None) -> Identity:
    if identity is None:
        raise AuthenticationRequiredError("sign in required")
    if not identity.is_admin:
        raise AdminRequiredError("admin role required")
    return identity
