import io
import random
import stat
from pathlib import Path

from PIL import Image

from dupecheck import FrameExtractionError


def pattern_image(seed: int, *, size=(256, 256), cells: int = 8) -> Image.Image:
    """Smooth random blob picture; different seeds give unrelated structure."""
    rng = random.Random(seed)
    small = Image.new("L", (cells, cells))
    small.putdata([rng.randrange(256) for _ in range(cells * cells)])
    return small.resize(size, Image.Resampling.BICUBIC).convert("RGB")


def encode(img: Image.Image, fmt: str = "PNG", **kwargs) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def animated_gif(*frames: Image.Image) -> bytes:
    buf = io.BytesIO()
    first, *rest = frames
    first.save(buf, format="GIF", save_all=True, append_images=list(rest), duration=100, loop=0)
    return buf.getvalue()


def write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class StubExtractor:
    """Stands in for ffmpeg: returns a fixed frame or raises."""

    def __init__(self, frame: bytes = b"", *, fail: bool = False):
        self.frame = frame
        self.fail = fail
        self.calls: list[tuple[bytes, str]] = []

    async def extract_frame(self, buffer: bytes, ext: str) -> bytes:
        self.calls.append((buffer, ext))
        if self.fail:
            raise FrameExtractionError("ffmpeg failed with code 1", returncode=1)
        return self.frame


def store_raw_fingerprint(database, post_id: int, value: str) -> None:
    """Write a fingerprint row directly, bypassing FingerprintStore validation."""
    with database.session() as conn:
        conn.execute(
            "INSERT INTO fingerprints (post_id, fingerprint, updated_at) VALUES (?, ?, 0)",
            (post_id, value),
        )
