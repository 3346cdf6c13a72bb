from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

import structlog

from app.catalog.upload.files import file_extension
from app.core.config import Settings
from app.core.errors import UpstreamFailureError
from app.db.models.assets import Asset
from app.services.storage import ObjectStorage, StorageError

logger = structlog.get_logger(__name__)
DOWNLOAD_NAME_UNSAFE_RE = re.compile(r'[\\/:*?"<>|\r\n]+')


class DeliveryLinkError(UpstreamFailureError):
    code = "E_DELIVERY_LINK"


@dataclass(frozen=True, slots=True)
class StreamLocator:
    url: str
    expires_in: int


@dataclass(frozen=True, slots=True)
class DownloadLink:
    asset_id: UUID
    title: str
    artist: str
    filename: str
    url: str
    expires_in: int
    track_number: int | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "song_id": str(self.asset_id),
            "title": self.title,
            "artist": self.artist,
            "filename": self.filename,
            "download_url": self.url,
            "expires_in": self.expires_in,
            "track_number": self.track_number,
        }


def download_filename(song: Asset) -> str:
    extension = file_extension(song.audio_key or "") or "mp3"
    base_name = DOWNLOAD_NAME_UNSAFE_RE.sub("_", f"{song.artist} - {song.title}").strip()
    return f"{base_name}.{extension}"


class DeliveryLocatorIssuer:
    """Signs short-lived storage URLs; it keeps no record of what it issued."""

    def __init__(self, *, storage: ObjectStorage, stream_ttl_seconds: int, download_ttl_seconds: int) -> None:
        self._storage = storage
        self.stream_ttl_seconds = stream_ttl_seconds
        self.download_ttl_seconds = download_ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings, *, storage: ObjectStorage) -> DeliveryLocatorIssuer:
        return cls(
            storage=storage,
            stream_ttl_seconds=settings.stream_url_ttl_seconds,
            download_ttl_seconds=settings.download_url_ttl_seconds,
        )

    async def issue_stream_url(self, storage_key: str, byte_range: str | None = None) -> StreamLocator:
        url = await self._storage.sign_get(
            key=storage_key,
            ttl_seconds=self.stream_ttl_seconds,
            byte_range=byte_range,
        )
        return StreamLocator(url=url, expires_in=self.stream_ttl_seconds)

    async def issue_download_url(self, storage_key: str, *, filename: str | None = None) -> str:
        return await self._storage.sign_get(
            key=storage_key,
            ttl_seconds=self.download_ttl_seconds,
            download_filename=filename,
        )

    async def issue_download_link(self, song: Asset) -> DownloadLink:
        if not song.audio_key:
            raise DeliveryLinkError(f"song '{song.title}' has no audio file")
        filename = download_filename(song)
        try:
            url = await self.issue_download_url(song.audio_key, filename=filename)
        except StorageError as exc:
            raise DeliveryLinkError(f"could not sign download for '{song.title}'") from exc
        return DownloadLink(
            asset_id=song.id,
            title=song.title,
            artist=song.artist,
            filename=filename,
            url=url,
            expires_in=self.download_ttl_seconds,
            track_number=song.track_number,
        )

    async def issue_album_download_links(self, songs: Sequence[Asset]) -> list[DownloadLink]:
        # One failed member fails the whole album response.
        links: list[DownloadLink] = []
        for song in songs:
            try:
                links.append(await self.issue_download_link(song))
            except DeliveryLinkError:
                logger.warning(
                    "delivery_album_link_failed",
                    song_id=str(song.id),
                    album_id=str(song.album_id) if song.album_id else None,
                    issued_before_failure=len(links),
                )
                raise
        return links
