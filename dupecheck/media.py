"""Media kind classification by file extension."""
from __future__ import annotations

from enum import Enum
from pathlib import Path


class MediaKind(str, Enum):
    IMAGE = "image"
    ANIMATED = "animated"
    VIDEO = "video"
    OTHER = "other"


# Must stay in sync with the file-receiving service's table
FILE_TYPE_MAP: dict[MediaKind, frozenset[str]] = {
    MediaKind.IMAGE: frozenset({".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tiff"}),
    MediaKind.ANIMATED: frozenset({".gif", ".apng"}),
    MediaKind.VIDEO: frozenset({".mp4", ".webm", ".mov", ".avi", ".mkv", ".quicktime"}),
}


def normalize_ext(ext: str) -> str:
    """Return a lowercase extension without the leading dot ('.PNG' -> 'png')."""
    return (ext or "").strip().lower().lstrip(".")


def ext_from_filename(filename: str) -> str:
    return normalize_ext(Path(filename or "").suffix)


def resolve_media_kind(ext: str) -> MediaKind:
    dotted = "." + normalize_ext(ext)
    for kind, exts in FILE_TYPE_MAP.items():
        if dotted in exts:
            return kind
    return MediaKind.OTHER
