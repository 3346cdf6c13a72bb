from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

import structlog

from app.catalog.errors import UploadValidationError
from app.catalog.upload.files import (
    CATEGORY_AUDIO,
    CATEGORY_COVERS,
    IncomingFile,
    build_storage_key,
    content_type_for,
    timestamp_ms,
    validate_audio_file,
    validate_image_file,
)
from app.catalog.upload.metadata import AlbumMetadata, SongMetadata
from app.catalog.upload.saga import CompensationLog
from app.core.config import Settings
from app.db.models.assets import ASSET_KIND_ALBUM, ASSET_KIND_SONG, Asset
from app.db.repo.assets_repo import AssetsRepo
from app.db.session import SessionLocal
from app.services.storage import ObjectStorage

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class AlbumUploadResult:
    album: Asset
    songs: list[Asset]


async def _put(
    storage: ObjectStorage,
    saga: CompensationLog,
    *,
    key: str,
    incoming: IncomingFile,
) -> str:
    await storage.put_object(key=key, data=incoming.data, content_type=content_type_for(incoming.filename))

    async def _remove() -> None:
        await storage.delete_object(key=key)

    saga.record(f"delete:{key}", _remove)
    return key


async def upload_song(
    *,
    storage: ObjectStorage,
    settings: Settings,
    owner_id: str,
    metadata: SongMetadata,
    audio: IncomingFile | None,
    cover: IncomingFile | None,
    now_utc: datetime,
) -> Asset:
    audio_file = validate_audio_file(audio, max_bytes=settings.max_audio_upload_bytes)
    cover_file = (
        validate_image_file(cover, max_bytes=settings.max_image_upload_bytes) if cover is not None else None
    )

    stamp = timestamp_ms(now_utc)
    saga = CompensationLog()
    try:
        audio_key = await _put(
            storage,
            saga,
            key=build_storage_key(
                category=CATEGORY_AUDIO,
                owner_id=owner_id,
                filename=audio_file.filename,
                timestamp_ms=stamp,
            ),
            incoming=audio_file,
        )
        cover_key = None
        if cover_file is not None:
            cover_key = await _put(
                storage,
                saga,
                key=build_storage_key(
                    category=CATEGORY_COVERS,
                    owner_id=owner_id,
                    filename=cover_file.filename,
                    timestamp_ms=stamp,
                ),
                incoming=cover_file,
            )

        song = Asset(
            id=uuid4(),
            kind=ASSET_KIND_SONG,
            title=metadata.title,
            artist=metadata.artist or settings.default_artist,
            price=metadata.price,
            featured=metadata.featured,
            cover_key=cover_key,
            audio_key=audio_key,
            duration_seconds=metadata.duration_seconds,
            genre=metadata.genre or settings.default_genre,
            created_at=now_utc,
            updated_at=now_utc,
        )
        async with SessionLocal.begin() as session:
            await AssetsRepo.create_many(session, assets=[song])
    except Exception as exc:
        failed_steps = await saga.unwind()
        logger.warning(
            "catalog_song_upload_failed",
            owner_id=owner_id,
            error_type=type(exc).__name__,
            cleanup_failures=len(failed_steps),
        )
        raise

    saga.clear()
    logger.info("catalog_song_uploaded", asset_id=str(song.id), owner_id=owner_id)
    return song


def _validate_album_files(
    *,
    settings: Settings,
    metadata: AlbumMetadata,
    cover: IncomingFile | None,
    audio_files: Sequence[IncomingFile | None],
) -> tuple[IncomingFile, list[IncomingFile]]:
    if len(audio_files) != len(metadata.songs):
        raise UploadValidationError(
            f"album has {len(metadata.songs)} songs but {len(audio_files)} audio files"
        )
    cover_file = validate_image_file(cover, max_bytes=settings.max_image_upload_bytes)
    validated = [
        validate_audio_file(
            audio_file,
            max_bytes=settings.max_audio_upload_bytes,
            label=f"song {index + 1} audio",
        )
        for index, audio_file in enumerate(audio_files)
    ]
    return cover_file, validated


async def upload_album(
    *,
    storage: ObjectStorage,
    settings: Settings,
    owner_id: str,
    metadata: AlbumMetadata,
    cover: IncomingFile | None,
    audio_files: Sequence[IncomingFile | None],
    now_utc: datetime,
) -> AlbumUploadResult:
    # Nothing is uploaded until every member passes validation.
    cover_file, validated_audio = _validate_album_files(
        settings=settings,
        metadata=metadata,
        cover=cover,
        audio_files=audio_files,
    )

    stamp = timestamp_ms(now_utc)
    artist = metadata.artist or settings.default_artist
    album_id = uuid4()
    saga = CompensationLog()
    try:
        cover_key = await _put(
            storage,
            saga,
            key=build_storage_key(
                category=CATEGORY_COVERS,
                owner_id=owner_id,
                filename=cover_file.filename,
                timestamp_ms=stamp,
            ),
            incoming=cover_file,
        )

        songs: list[Asset] = []
        for index, (track, audio_file) in enumerate(zip(metadata.songs, validated_audio)):
            audio_key = await _put(
                storage,
                saga,
                key=build_storage_key(
                    category=CATEGORY_AUDIO,
                    owner_id=owner_id,
                    filename=audio_file.filename,
                    timestamp_ms=stamp + index,
                ),
                incoming=audio_file,
            )
            songs.append(
                Asset(
                    id=uuid4(),
                    kind=ASSET_KIND_SONG,
                    title=track.title,
                    artist=artist,
                    price=track.price,
                    featured=False,
                    cover_key=cover_key,
                    audio_key=audio_key,
                    duration_seconds=track.duration_seconds,
                    genre=track.genre or settings.default_genre,
                    album_id=album_id,
                    track_number=index + 1,
                    created_at=now_utc,
                    updated_at=now_utc,
                )
            )

        album = Asset(
            id=album_id,
            kind=ASSET_KIND_ALBUM,
            title=metadata.title,
            artist=artist,
            price=metadata.price,
            featured=metadata.featured,
            cover_key=cover_key,
            release_date=metadata.release_date or now_utc.date(),
            description=metadata.description,
            created_at=now_utc,
            updated_at=now_utc,
        )
        async with SessionLocal.begin() as session:
            await AssetsRepo.create_many(session, assets=[album, *songs])
    except Exception as exc:
        failed_steps = await saga.unwind()
        logger.warning(
            "catalog_album_upload_failed",
            owner_id=owner_id,
            album_title=metadata.title,
            error_type=type(exc).__name__,
            cleanup_failures=len(failed_steps),
        )
        raise

    saga.clear()
    logger.info(
        "catalog_album_uploaded",
        asset_id=str(album.id),
        owner_id=owner_id,
        songs_total=len(songs),
    )
    return AlbumUploadResult(album=album, songs=songs)
