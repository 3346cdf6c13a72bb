from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.assets import ASSET_KIND_SONG, Asset


class AssetsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, asset_id: UUID) -> Asset | None:
        return await session.get(Asset, asset_id)

    @staticmethod
    async def list_album_members(session: AsyncSession, album_id: UUID) -> list[Asset]:
        stmt = (
            select(Asset)
            .where(
                Asset.album_id == album_id,
                Asset.kind == ASSET_KIND_SONG,
            )
            .order_by(Asset.track_number.asc(), Asset.created_at.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def create_many(session: AsyncSession, *, assets: Sequence[Asset]) -> list[Asset]:
        # Albums must be flushed before member rows referencing them.
        ordered = sorted(assets, key=lambda asset: 0 if asset.album_id is None else 1)
        for asset in ordered:
            session.add(asset)
            await session.flush()
        return list(assets)

    @staticmethod
    async def delete_by_ids(session: AsyncSession, asset_ids: Sequence[UUID]) -> int:
        ids = tuple(asset_ids)
        if not ids:
            return 0
        stmt = delete(Asset).where(Asset.id.in_(ids)).returning(Asset.id)
        result = await session.execute(stmt)
        return len(list(result.scalars()))

    @staticmethod
    async def list_by_ids(session: AsyncSession, asset_ids: Sequence[UUID]) -> list[Asset]:
        ids = tuple(set(asset_ids))
        if not ids:
            return []
        stmt = select(Asset).where(Asset.id.in_(ids))
        result = await session.execute(stmt)
        return list(result.scalars().all())
