"""
Perceptual hashing of still images.

Fingerprints are DCT perceptual hashes (imagehash.phash) rendered as
lowercase hex. The default 8x8 grid yields 64 bits / 16 hex digits.
Animated containers are hashed on their first frame, so the caller never
needs a separate extraction step for GIF/APNG.
"""
from __future__ import annotations

import io
import re

import imagehash
from PIL import Image

from .errors import DistanceMismatchError, HashComputationError
from .logs import log

Fingerprint = str

_HEX = re.compile(r"[0-9a-f]+")

_DECODE_ERRORS = (OSError, SyntaxError, ValueError, Image.DecompressionBombError)


def _open_still(data: bytes) -> Image.Image:
    if not data:
        raise HashComputationError("empty image buffer")
    try:
        img = Image.open(io.BytesIO(data))
        # Force a full decode of frame 0 so truncated files fail here, not later
        img.seek(0)
        img.load()
    except _DECODE_ERRORS as e:
        raise HashComputationError(f"undecodable image: {e}") from e
    return img


def compute_fingerprint(still: bytes, *, hash_size: int = 8) -> Fingerprint:
    """Return the perceptual hash of ``still`` as a hex string.

    Identical bytes always produce identical output. Re-encoded or resized
    copies of the same picture land within a few bits of each other.
    Raises HashComputationError on malformed bytes.
    """
    img = _open_still(still)
    try:
        try:
            h = imagehash.phash(img, hash_size=hash_size)
        except _DECODE_ERRORS as e:
            raise HashComputationError(f"failed to hash image: {e}") from e
    finally:
        img.close()
    fp = str(h)
    log("phash", "computed fingerprint=%s bytes=%d size=%d", fp, len(still), hash_size)
    return fp


def fingerprint_bits(fp: Fingerprint) -> int:
    return len(fp) * 4


def hex_length(hash_size: int) -> int:
    return (hash_size * hash_size + 3) // 4


def validate_fingerprint(fp: Fingerprint, hash_size: int = 8) -> Fingerprint:
    """Return ``fp`` lowercased; ValueError unless it is hex of the expected length."""
    norm = (fp or "").strip().lower()
    if not _HEX.fullmatch(norm):
        raise ValueError(f"fingerprint is not hex: {fp!r}")
    if len(norm) != hex_length(hash_size):
        raise ValueError(
            f"fingerprint has {fingerprint_bits(norm)} bits, expected {hash_size * hash_size}"
        )
    return norm


def hamming_distance(a: Fingerprint, b: Fingerprint) -> int:
    """Count of differing bit positions between two equal-length fingerprints."""
    if len(a) != len(b):
        raise DistanceMismatchError(
            f"fingerprint length mismatch: {fingerprint_bits(a)} vs {fingerprint_bits(b)} bits"
        )
    try:
        return bin(int(a, 16) ^ int(b, 16)).count("1")
    except ValueError as e:
        raise DistanceMismatchError(f"malformed fingerprint: {a!r} vs {b!r}") from e


def similarity(a: Fingerprint, b: Fingerprint) -> float:
    bits = fingerprint_bits(a)
    if not bits:
        return 0.0
    return 1.0 - (hamming_distance(a, b) / bits)
