"""Perceptual-hash duplicate detection for booru uploads."""
from __future__ import annotations

from .checker import DuplicateChecker, DuplicateVerdict
from .config import Settings
from .errors import (
    DistanceMismatchError,
    DupeCheckError,
    FrameExtractionError,
    HashComputationError,
    PostLookupDegraded,
    UnsupportedMediaError,
)
from .frames import FrameExtractor, ffmpeg_available
from .hashing import compute_fingerprint, hamming_distance
from .media import MediaKind, resolve_media_kind
from .posts import Post, PostStore
from .store import FingerprintRecord, FingerprintStore

__all__ = [
    "DistanceMismatchError",
    "DupeCheckError",
    "DuplicateChecker",
    "DuplicateVerdict",
    "FingerprintRecord",
    "FingerprintStore",
    "FrameExtractionError",
    "FrameExtractor",
    "HashComputationError",
    "MediaKind",
    "Post",
    "PostLookupDegraded",
    "PostStore",
    "Settings",
    "UnsupportedMediaError",
    "compute_fingerprint",
    "ffmpeg_available",
    "hamming_distance",
    "resolve_media_kind",
]
