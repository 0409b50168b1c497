"""Error taxonomy for the duplicate-check pipeline."""
from __future__ import annotations

from typing import Optional


class DupeCheckError(Exception):
    """Base class for every error raised by the pipeline."""


class FrameExtractionError(DupeCheckError):
    """ffmpeg could not be spawned, exited non-zero, timed out or produced no frame."""

    def __init__(self, message: str, *, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class HashComputationError(DupeCheckError):
    """The hasher received bytes it could not decode as an image."""


class DistanceMismatchError(DupeCheckError):
    """Two fingerprints of different bit lengths were compared.

    This is an integrity bug (mixed hash sizes in one catalog), never a
    user error.
    """


class UnsupportedMediaError(DupeCheckError):
    """The upload's media kind has no fingerprinting path."""


class PostLookupDegraded(DupeCheckError):
    """A duplicate was found but the matched post could not be resolved.

    Non-fatal: the checker logs it and still reports the duplicate.
    """

    def __init__(self, post_id: int, cause: BaseException):
        super().__init__(f"lookup of post {post_id} failed: {cause}")
        self.post_id = post_id
        self.cause = cause
