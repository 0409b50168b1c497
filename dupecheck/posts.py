"""SQLite-backed post records consumed by the duplicate checker."""
from __future__ import annotations

import sqlite3
import time
from dataclasses import asdict, dataclass
from typing import Any, Optional, Protocol

from db import Database

SAFETY_LEVELS = ("SAFE", "SKETCHY", "UNSAFE")

# Columns callers may set through create_post / update_post
_WRITABLE = ("file_ext", "file_size", "anonymous", "safety")


@dataclass(frozen=True)
class Post:
    id: int
    file_ext: str
    file_size: int
    anonymous: bool
    safety: str
    created_at: float
    updated_at: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PostLookup(Protocol):
    def get_post(self, post_id: int) -> Optional[Post]: ...


def _row_to_post(row: sqlite3.Row) -> Post:
    return Post(
        id=int(row["id"]),
        file_ext=row["file_ext"],
        file_size=int(row["file_size"]),
        anonymous=bool(row["anonymous"]),
        safety=row["safety"],
        created_at=float(row["created_at"]),
        updated_at=float(row["updated_at"]),
    )


def _clean_fields(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - set(_WRITABLE)
    if unknown:
        raise ValueError(f"unknown post fields: {', '.join(sorted(unknown))}")
    out = dict(fields)
    if "safety" in out:
        safety = str(out["safety"]).upper()
        if safety not in SAFETY_LEVELS:
            raise ValueError(f"invalid safety: {out['safety']}")
        out["safety"] = safety
    if "anonymous" in out:
        out["anonymous"] = 1 if out["anonymous"] else 0
    return out


class PostStore:
    def __init__(self, database: Database):
        self.db = database

    def create_post(self, **fields: Any) -> Post:
        values = _clean_fields(fields)
        if not values.get("file_ext"):
            raise ValueError("file_ext is required")
        now = time.time()
        values["created_at"] = now
        values["updated_at"] = now
        cols = ", ".join(values)
        marks = ", ".join("?" for _ in values)
        with self.db.session() as conn:
            cur = conn.execute(f"INSERT INTO posts ({cols}) VALUES ({marks})", tuple(values.values()))
            post_id = int(cur.lastrowid)
            row = conn.execute("SELECT * FROM posts WHERE id = ?", (post_id,)).fetchone()
        return _row_to_post(row)

    def get_post(self, post_id: int) -> Optional[Post]:
        with self.db.session() as conn:
            row = conn.execute("SELECT * FROM posts WHERE id = ?", (int(post_id),)).fetchone()
        return _row_to_post(row) if row is not None else None

    def update_post(self, post_id: int, **fields: Any) -> Optional[Post]:
        """Apply ``fields`` to a post; returns the updated post or None if it does not exist."""
        values = _clean_fields(fields)
        values["updated_at"] = time.time()
        assignments = ", ".join(f"{k} = ?" for k in values)
        with self.db.session() as conn:
            cur = conn.execute(
                f"UPDATE posts SET {assignments} WHERE id = ?",
                (*values.values(), int(post_id)),
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM posts WHERE id = ?", (int(post_id),)).fetchone()
        return _row_to_post(row)

    def delete_post(self, post_id: int) -> bool:
        # Fingerprint row goes with it (ON DELETE CASCADE)
        with self.db.session() as conn:
            cur = conn.execute("DELETE FROM posts WHERE id = ?", (int(post_id),))
            return cur.rowcount > 0
