from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.catalog.errors import UploadValidationError

SONG_MAX_PRICE = Decimal("10000")
ALBUM_MAX_PRICE = Decimal("50000")


class SongMetadata(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = Field(min_length=1, max_length=100)
    artist: str | None = Field(default=None, min_length=1, max_length=50)
    genre: str | None = Field(default=None, min_length=1, max_length=30)
    duration_seconds: int = Field(ge=1, le=3600)
    price: Decimal = Field(ge=0, le=SONG_MAX_PRICE, decimal_places=2)
    featured: bool = False


class AlbumTrackMetadata(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = Field(min_length=1, max_length=100)
    genre: str | None = Field(default=None, min_length=1, max_length=30)
    duration_seconds: int = Field(ge=1, le=3600)
    price: Decimal = Field(ge=0, le=SONG_MAX_PRICE, decimal_places=2)


class AlbumMetadata(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = Field(min_length=1, max_length=100)
    artist: str | None = Field(default=None, min_length=1, max_length=50)
    price: Decimal = Field(ge=0, le=ALBUM_MAX_PRICE, decimal_places=2)
    description: str | None = Field(default=None, max_length=500)
    release_date: date | None = None
    featured: bool = False
    songs: list[AlbumTrackMetadata] = Field(min_length=1, max_length=100)


def _first_error_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid metadata"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid value')}" if location else str(first.get("msg"))


def parse_song_metadata(raw: dict[str, object]) -> SongMetadata:
    try:
        return SongMetadata.model_validate(raw)
    except ValidationError as exc:
        raise UploadValidationError(_first_error_message(exc)) from exc


def parse_album_metadata(raw: dict[str, object]) -> AlbumMetadata:
    try:
        return AlbumMetadata.model_validate(raw)
    except ValidationError as exc:
        raise UploadValidationError(_first_error_message(exc)) from exc
