from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.assets import Asset
from app.db.models.entitlements import Entitlement
from app.db.repo.assets_repo import AssetsRepo
from app.db.repo.entitlements_repo import EntitlementsRepo


@dataclass(slots=True)
class PurchaseListing:
    items: list[tuple[Entitlement, Asset | None]]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


async def list_user_purchases(
    session: AsyncSession,
    *,
    user_id: str,
    status: str | None,
    asset_kind: str | None,
    page: int,
    limit: int,
) -> PurchaseListing:
    entitlements, total = await EntitlementsRepo.list_for_user(
        session,
        user_id=user_id,
        status=status,
        asset_kind=asset_kind,
        limit=limit,
        offset=(page - 1) * limit,
    )
    assets = await AssetsRepo.list_by_ids(session, [item.asset_id for item in entitlements])
    assets_by_id = {asset.id: asset for asset in assets}
    return PurchaseListing(
        items=[(item, assets_by_id.get(item.asset_id)) for item in entitlements],
        total=total,
        page=page,
        limit=limit,
    )
