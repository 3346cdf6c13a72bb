from __future__ import annotations

from .files import IncomingFile
from .metadata import AlbumMetadata, SongMetadata, parse_album_metadata, parse_song_metadata
from .saga import CompensationLog
from .service import AlbumUploadResult, upload_album, upload_song


class CatalogUploadService:
    upload_song = staticmethod(upload_song)
    upload_album = staticmethod(upload_album)
    parse_song_metadata = staticmethod(parse_song_metadata)
    parse_album_metadata = staticmethod(parse_album_metadata)


__all__ = [
    "AlbumMetadata",
    "AlbumUploadResult",
    "CatalogUploadService",
    "CompensationLog",
    "IncomingFile",
    "SongMetadata",
]
