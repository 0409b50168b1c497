"""Environment-driven settings for the duplicate checker."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


# -----------------------------
# Env tunables
# -----------------------------
def _env_int(name: str, default: int) -> int:
    try:
        v = os.environ.get(name)
        return int(v) if v is not None and str(v).strip() != "" else int(default)
    except ValueError:
        return int(default)


def _env_float(name: str, default: float) -> float:
    try:
        v = os.environ.get(name)
        return float(v) if v is not None and str(v).strip() != "" else float(default)
    except ValueError:
        return float(default)


def _env_on(name: str, default: bool = False) -> bool:
    v = os.environ.get(name)
    if v is None:
        return default
    return str(v).lower() in ("1", "true", "yes")


DEFAULT_THRESHOLD = 5


@dataclass(frozen=True)
class Settings:
    db_path: Path = Path("data/dupecheck.db")
    temp_dir: Path = Path("data/temp")
    ffmpeg: str = "ffmpeg"
    # Seconds before a stalled ffmpeg is killed
    ffmpeg_timelimit: float = 30.0
    ffmpeg_concurrency: int = 4
    frame_offset: float = 1.0
    frame_width: int = 320
    hash_size: int = 8
    threshold: int = DEFAULT_THRESHOLD

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=Path(os.environ.get("DUPECHECK_DB") or "data/dupecheck.db").expanduser(),
            temp_dir=Path(os.environ.get("DUPECHECK_TEMP_DIR") or "data/temp").expanduser(),
            ffmpeg=os.environ.get("FFMPEG") or "ffmpeg",
            ffmpeg_timelimit=max(1.0, _env_float("FFMPEG_TIMELIMIT", 30.0)),
            # Same clamp as the preview pipeline's ffmpeg gate
            ffmpeg_concurrency=max(1, min(16, _env_int("FFMPEG_CONCURRENCY", 4))),
            frame_offset=max(0.0, _env_float("FRAME_OFFSET", 1.0)),
            frame_width=max(16, _env_int("FRAME_WIDTH", 320)),
            hash_size=max(2, _env_int("PHASH_SIZE", 8)),
            threshold=max(0, _env_int("DUPLICATE_THRESHOLD", DEFAULT_THRESHOLD)),
        )
