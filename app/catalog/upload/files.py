from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from app.catalog.errors import FileTooLargeError, UnsupportedFileTypeError, UploadValidationError

CATEGORY_AUDIO = "audio"
CATEGORY_COVERS = "covers"

AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "flac", "m4a", "aac"})
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "webp"})
CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "m4a": "audio/mp4",
    "aac": "audio/aac",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"
UNSAFE_FILENAME_CHARS_RE = re.compile(r"[^a-zA-Z0-9.-]")


@dataclass(frozen=True, slots=True)
class IncomingFile:
    filename: str
    data: bytes

    @property
    def extension(self) -> str:
        return file_extension(self.filename)

    @property
    def size(self) -> int:
        return len(self.data)


def file_extension(filename: str) -> str:
    _, dot, extension = filename.rpartition(".")
    return extension.lower() if dot else ""


def content_type_for(filename: str) -> str:
    return CONTENT_TYPES.get(file_extension(filename), DEFAULT_CONTENT_TYPE)


def sanitize_filename(filename: str) -> str:
    # Drops any client supplied directory part before replacing unsafe characters.
    base_name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    return UNSAFE_FILENAME_CHARS_RE.sub("_", base_name) or "file"


def build_storage_key(*, category: str, owner_id: str, filename: str, timestamp_ms: int) -> str:
    if category not in {CATEGORY_AUDIO, CATEGORY_COVERS}:
        raise ValueError(f"unknown storage category {category!r}")
    owner_segment = sanitize_filename(owner_id)
    return f"{category}/{owner_segment}/{timestamp_ms}_{sanitize_filename(filename)}"


def timestamp_ms(now_utc: datetime) -> int:
    return int(now_utc.timestamp() * 1000)


def _validate_file(
    incoming: IncomingFile | None,
    *,
    label: str,
    allowed_extensions: frozenset[str],
    max_bytes: int,
) -> IncomingFile:
    if incoming is None or not incoming.filename:
        raise UploadValidationError(f"{label} file is required")
    if incoming.extension not in allowed_extensions:
        allowed = ", ".join(sorted(allowed_extensions))
        raise UnsupportedFileTypeError(f"{label} file '{incoming.filename}' must be one of: {allowed}")
    if incoming.size == 0:
        raise UploadValidationError(f"{label} file '{incoming.filename}' is empty")
    if incoming.size > max_bytes:
        raise FileTooLargeError(f"{label} file '{incoming.filename}' exceeds {max_bytes} bytes")
    return incoming


def validate_audio_file(incoming: IncomingFile | None, *, max_bytes: int, label: str = "audio") -> IncomingFile:
    return _validate_file(incoming, label=label, allowed_extensions=AUDIO_EXTENSIONS, max_bytes=max_bytes)


def validate_image_file(incoming: IncomingFile | None, *, max_bytes: int, label: str = "cover") -> IncomingFile:
    return _validate_file(incoming, label=label, allowed_extensions=IMAGE_EXTENSIONS, max_bytes=max_bytes)
