"""
Duplicate check for a single upload.

check_duplicate reduces the upload to a still image (ffmpeg for videos, the
buffer itself for images and animated images), fingerprints it and looks for
an existing post within the threshold. No retries: a decode failure fails
the upload attempt.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

from .config import Settings
from .errors import DistanceMismatchError, PostLookupDegraded, UnsupportedMediaError
from .hashing import Fingerprint, compute_fingerprint
from .logs import log, logger
from .media import MediaKind, normalize_ext, resolve_media_kind
from .posts import Post, PostLookup
from .store import FingerprintStore


class StillExtractor(Protocol):
    async def extract_frame(self, buffer: bytes, ext: str) -> bytes: ...


@dataclass(frozen=True)
class DuplicateVerdict:
    is_duplicate: bool
    fingerprint: Fingerprint
    matched_post_id: Optional[int] = None
    matched_post: Optional[Post] = None
    distance: Optional[int] = None
    lookup_degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.is_duplicate, "genHash": self.fingerprint}
        if self.is_duplicate:
            if self.matched_post is not None:
                out["ogPost"] = self.matched_post.to_dict()
            else:
                out["ogPost"] = {"id": self.matched_post_id}
        return out


async def fingerprint_media(
    extractor: StillExtractor,
    buffer: bytes,
    ext: str,
    media_kind: Union[MediaKind, str, None] = None,
    *,
    hash_size: int = 8,
) -> Fingerprint:
    """Compute the fingerprint of an upload without touching any store."""
    kind = MediaKind(media_kind) if media_kind else resolve_media_kind(ext)
    if kind is MediaKind.OTHER:
        raise UnsupportedMediaError(f"no fingerprint path for .{normalize_ext(ext)}")
    if kind is MediaKind.VIDEO:
        still = await extractor.extract_frame(buffer, ext)
    else:
        still = buffer
    return await asyncio.to_thread(compute_fingerprint, still, hash_size=hash_size)


class DuplicateChecker:
    def __init__(
        self,
        extractor: StillExtractor,
        fingerprints: FingerprintStore,
        posts: PostLookup,
        settings: Settings,
    ):
        self.extractor = extractor
        self.fingerprints = fingerprints
        self.posts = posts
        self.settings = settings

    async def fingerprint(self, buffer: bytes, ext: str, media_kind: Union[MediaKind, str, None] = None) -> Fingerprint:
        return await fingerprint_media(
            self.extractor, buffer, ext, media_kind, hash_size=self.settings.hash_size,
        )

    async def check_duplicate(
        self,
        buffer: bytes,
        ext: str,
        media_kind: Union[MediaKind, str, None] = None,
        *,
        exclude_post_id: Optional[int] = None,
    ) -> DuplicateVerdict:
        fp = await self.fingerprint(buffer, ext, media_kind)
        try:
            match = await asyncio.to_thread(
                self.fingerprints.find_near_match,
                fp,
                self.settings.threshold,
                exclude_post_id=exclude_post_id,
            )
        except DistanceMismatchError:
            logger.error("fingerprint integrity violation while matching %s", fp, exc_info=True)
            raise
        if match is None:
            return DuplicateVerdict(is_duplicate=False, fingerprint=fp)

        post_id = match.record.post_id
        post: Optional[Post] = None
        degraded = False
        try:
            post = await asyncio.to_thread(self.posts.get_post, post_id)
        except Exception as e:  # lookup is enrichment only
            degraded = True
            logger.warning("%s", PostLookupDegraded(post_id, e))
        log("dupes", "duplicate fingerprint=%s post=%d distance=%d resolved=%s",
            fp, post_id, match.distance, post is not None)
        return DuplicateVerdict(
            is_duplicate=True,
            fingerprint=fp,
            matched_post_id=post_id,
            matched_post=post,
            distance=match.distance,
            lookup_degraded=degraded,
        )
