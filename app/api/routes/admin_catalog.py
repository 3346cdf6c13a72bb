from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from app.api.deps import get_identity, get_services
from app.api.errors import as_http_exception
from app.catalog import deletion
from app.catalog.errors import FileTooLargeError
from app.catalog.upload import CatalogUploadService, IncomingFile
from app.core.config import get_settings
from app.core.errors import StorefrontError
from app.db.models.assets import Asset
from app.services.identity import Identity
from app.services.registry import ServiceRegistry
from app.store.access import AccessGate

from .purchase_models import AssetView, asset_view

router = APIRouter(prefix="/admin/catalog", tags=["admin-catalog"])
logger = structlog.get_logger(__name__)
ALBUM_SONG_FIELD = "songs[{index}][{name}]"


class SongUploadResponse(BaseModel):
    song: AssetView


class AlbumUploadResponse(BaseModel):
    album: AssetView
    songs: list[AssetView]


class DeleteResponse(BaseModel):
    asset_id: UUID
    deleted_rows: int
    storage_failures: int


def _text_field(form: Any, name: str) -> str | None:
    value = form.get(name)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _flag_field(form: Any, name: str) -> bool:
    return (_text_field(form, name) or "").lower() == "true"


async def _file_field(form: Any, name: str, *, max_bytes: int) -> IncomingFile | None:
    value = form.get(name)
    if value is None or isinstance(value, str):
        return None
    filename = getattr(value, "filename", None)
    if not filename:
        return None
    # The part is already spooled; refuse it before loading it into memory.
    size = getattr(value, "size", None)
    if size is not None and size > max_bytes:
        raise FileTooLargeError(f"file '{filename}' exceeds {max_bytes} bytes")
    return IncomingFile(filename=filename, data=await value.read())


def _require_admin(identity: Identity) -> Identity:
    try:
        return AccessGate.require_admin(identity)
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc


def _song_fields(form: Any) -> dict[str, object]:
    return {
        "title": _text_field(form, "title"),
        "artist": _text_field(form, "artist"),
        "genre": _text_field(form, "genre"),
        "duration_seconds": _text_field(form, "duration"),
        "price": _text_field(form, "price"),
        "featured": _flag_field(form, "featured"),
    }


def _album_track_fields(form: Any) -> list[dict[str, object]]:
    tracks: list[dict[str, object]] = []
    index = 0
    while _text_field(form, ALBUM_SONG_FIELD.format(index=index, name="title")) is not None:
        tracks.append(
            {
                "title": _text_field(form, ALBUM_SONG_FIELD.format(index=index, name="title")),
                "genre": _text_field(form, ALBUM_SONG_FIELD.format(index=index, name="genre")),
                "duration_seconds": _text_field(form, ALBUM_SONG_FIELD.format(index=index, name="duration")),
                "price": _text_field(form, ALBUM_SONG_FIELD.format(index=index, name="price")),
            }
        )
        index += 1
    return tracks


def _views(assets: list[Asset]) -> list[AssetView]:
    return [view for view in (asset_view(asset) for asset in assets) if view is not None]


@router.post("/songs", response_model=SongUploadResponse, status_code=201)
async def upload_song(
    request: Request,
    identity: Identity = Depends(get_identity),
    services: ServiceRegistry = Depends(get_services),
) -> SongUploadResponse:
    admin = _require_admin(identity)
    settings = get_settings()
    form = await request.form()
    try:
        metadata = CatalogUploadService.parse_song_metadata(_song_fields(form))
        song = await CatalogUploadService.upload_song(
            storage=services.storage,
            settings=settings,
            owner_id=admin.subject,
            metadata=metadata,
            audio=await _file_field(form, "audioFile", max_bytes=settings.max_audio_upload_bytes),
            cover=await _file_field(form, "coverFile", max_bytes=settings.max_image_upload_bytes),
            now_utc=datetime.now(timezone.utc),
        )
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc
    finally:
        await form.close()

    view = asset_view(song)
    assert view is not None
    return SongUploadResponse(song=view)


@router.post("/albums", response_model=AlbumUploadResponse, status_code=201)
async def upload_album(
    request: Request,
    identity: Identity = Depends(get_identity),
    services: ServiceRegistry = Depends(get_services),
) -> AlbumUploadResponse:
    admin = _require_admin(identity)
    settings = get_settings()
    form = await request.form()
    try:
        tracks = _album_track_fields(form)
        metadata = CatalogUploadService.parse_album_metadata(
            {
                "title": _text_field(form, "title"),
                "artist": _text_field(form, "artist"),
                "price": _text_field(form, "price"),
                "description": _text_field(form, "description"),
                "release_date": _text_field(form, "releaseDate"),
                "featured": _flag_field(form, "featured"),
                "songs": tracks,
            }
        )
        audio_files = [
            await _file_field(
                form,
                ALBUM_SONG_FIELD.format(index=index, name="audioFile"),
                max_bytes=settings.max_audio_upload_bytes,
            )
            for index in range(len(tracks))
        ]
        result = await CatalogUploadService.upload_album(
            storage=services.storage,
            settings=settings,
            owner_id=admin.subject,
            metadata=metadata,
            cover=await _file_field(form, "coverFile", max_bytes=settings.max_image_upload_bytes),
            audio_files=audio_files,
            now_utc=datetime.now(timezone.utc),
        )
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc
    finally:
        await form.close()

    album_view = asset_view(result.album)
    assert album_view is not None
    return AlbumUploadResponse(album=album_view, songs=_views(result.songs))


@router.delete("/songs/{song_id}", response_model=DeleteResponse)
async def delete_song(
    song_id: UUID,
    identity: Identity = Depends(get_identity),
    services: ServiceRegistry = Depends(get_services),
) -> DeleteResponse:
    try:
        AccessGate.require_admin(identity)
        result = await deletion.delete_song(storage=services.storage, song_id=song_id)
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc
    return DeleteResponse(
        asset_id=result.asset_id,
        deleted_rows=result.deleted_rows,
        storage_failures=result.storage_failures,
    )


@router.delete("/albums/{album_id}", response_model=DeleteResponse)
async def delete_album(
    album_id: UUID,
    identity: Identity = Depends(get_identity),
    services: ServiceRegistry = Depends(get_services),
) -> DeleteResponse:
    try:
        AccessGate.require_admin(identity)
        result = await deletion.delete_album(storage=services.storage, album_id=album_id)
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc
    return DeleteResponse(
        asset_id=result.asset_id,
        deleted_rows=result.deleted_rows,
        storage_failures=result.storage_failures,
    )
