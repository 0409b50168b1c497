#!/usr/bin/env python3
"""
CLI to fingerprint media files without running the server.

Usage:
    python tools/fingerprint.py FILE [FILE ...] [--db data/dupecheck.db] [--threshold 5]

Prints one JSON object per file. With --db, each file is also checked
against the stored fingerprints (nothing is written).

Notes:
- Respects the same env settings as the server (FFMPEG, FFMPEG_TIMELIMIT, ...).
- Video files require ffmpeg.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import sys
from pathlib import Path
from typing import Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from db import Database  # noqa: E402
from dupecheck import (  # noqa: E402
    DupeCheckError,
    DuplicateChecker,
    FingerprintStore,
    FrameExtractor,
    PostStore,
    Settings,
    resolve_media_kind,
)
from dupecheck.checker import fingerprint_media  # noqa: E402
from dupecheck.media import ext_from_filename  # noqa: E402


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Compute perceptual fingerprints for media files")
    ap.add_argument("files", nargs="+", type=Path)
    ap.add_argument("--db", type=Path, default=None, help="Check against this database")
    ap.add_argument("--threshold", type=int, default=None, help="Max Hamming distance for a match")
    return ap.parse_args(argv)


async def _process(paths: list[Path], settings: Settings, database: Optional[Database]) -> int:
    extractor = FrameExtractor(settings)
    checker: Optional[DuplicateChecker] = None
    if database is not None:
        database.ensure_schema()
        fingerprints = FingerprintStore(database, hash_size=settings.hash_size)
        checker = DuplicateChecker(extractor, fingerprints, PostStore(database), settings)
    failures = 0
    for path in paths:
        ext = ext_from_filename(path.name)
        entry: dict = {"file": str(path), "kind": resolve_media_kind(ext).value}
        try:
            data = path.read_bytes()
            if checker is not None:
                verdict = await checker.check_duplicate(data, ext)
                entry.update(verdict.to_dict())
            else:
                entry["genHash"] = await fingerprint_media(extractor, data, ext, hash_size=settings.hash_size)
        except (OSError, DupeCheckError) as e:
            failures += 1
            entry["error"] = f"{type(e).__name__}: {e}"
        print(json.dumps(entry))
    return 1 if failures else 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    settings = Settings.from_env()
    if args.threshold is not None:
        settings = dataclasses.replace(settings, threshold=max(0, args.threshold))
    database = Database(args.db) if args.db else None
    return asyncio.run(_process(list(args.files), settings, database))


if __name__ == "__main__":
    sys.exit(main())
