from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import structlog

from app.catalog.errors import AssetKindMismatchError, AssetNotFoundError
from app.db.models.assets import ASSET_KIND_ALBUM, ASSET_KIND_SONG, Asset
from app.db.repo.assets_repo import AssetsRepo
from app.db.session import SessionLocal
from app.services.storage import ObjectStorage

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class DeletionResult:
    asset_id: UUID
    deleted_rows: int
    storage_keys: int
    storage_failures: int


def _storage_keys(assets: list[Asset]) -> list[str]:
    keys: list[str] = []
    for asset in assets:
        for key in (asset.audio_key, asset.cover_key):
            if key and key not in keys:
                keys.append(key)
    return keys


async def _delete_blobs(storage: ObjectStorage, keys: list[str], *, asset_id: UUID) -> int:
    failures = 0
    for key in keys:
        try:
            await storage.delete_object(key=key)
        except Exception as exc:
            failures += 1
            logger.warning(
                "catalog_storage_delete_failed",
                asset_id=str(asset_id),
                key=key,
                error_type=type(exc).__name__,
            )
    return failures


async def delete_asset(*, storage: ObjectStorage, asset_id: UUID, expected_kind: str) -> DeletionResult:
    async with SessionLocal.begin() as session:
        asset = await AssetsRepo.get_by_id(session, asset_id)
        if asset is None:
            raise AssetNotFoundError("asset not found")
        if asset.kind != expected_kind:
            raise AssetKindMismatchError(f"asset is a {asset.kind}, not a {expected_kind}")

        affected = [asset]
        if asset.kind == ASSET_KIND_ALBUM:
            affected.extend(await AssetsRepo.list_album_members(session, asset.id))
        keys = _storage_keys(affected)

    # Storage is reclaimable; the catalog row goes regardless of blob cleanup.
    storage_failures = await _delete_blobs(storage, keys, asset_id=asset_id)

    async with SessionLocal.begin() as session:
        member_ids = [item.id for item in affected if item.id != asset_id]
        deleted_rows = await AssetsRepo.delete_by_ids(session, member_ids)
        deleted_rows += await AssetsRepo.delete_by_ids(session, [asset_id])

    logger.info(
        "catalog_asset_deleted",
        asset_id=str(asset_id),
        kind=expected_kind,
        deleted_rows=deleted_rows,
        storage_failures=storage_failures,
    )
    return DeletionResult(
        asset_id=asset_id,
        deleted_rows=deleted_rows,
        storage_keys=len(keys),
        storage_failures=storage_failures,
    )


async def delete_song(*, storage: ObjectStorage, song_id: UUID) -> DeletionResult:
    return await delete_asset(storage=storage, asset_id=song_id, expected_kind=ASSET_KIND_SONG)


async def delete_album(*, storage: ObjectStorage, album_id: UUID) -> DeletionResult:
    return await delete_asset(storage=storage, asset_id=album_id, expected_kind=ASSET_KIND_ALBUM)
