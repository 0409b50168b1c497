"""
Fingerprint records and near-duplicate lookup.

find_near is a linear scan in ascending post id order that stops at the
first record within the threshold. It does not look for the globally
closest record. At large catalog sizes this scan is the bottleneck; a
prefix-bucketed index would have to keep the same first-match ordering.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterator, Optional

from db import Database

from .config import DEFAULT_THRESHOLD
from .hashing import Fingerprint, hamming_distance, similarity, validate_fingerprint
from .logs import log


@dataclass(frozen=True)
class FingerprintRecord:
    post_id: int
    fingerprint: Fingerprint


@dataclass(frozen=True)
class NearMatch:
    record: FingerprintRecord
    distance: int


class FingerprintStore:
    def __init__(self, database: Database, hash_size: int = 8):
        self.db = database
        self.hash_size = hash_size

    def upsert(self, post_id: int, fingerprint: Fingerprint) -> None:
        """Store or overwrite the fingerprint of ``post_id``.

        Raises ValueError unless ``fingerprint`` is hex of the configured length.
        """
        fingerprint = validate_fingerprint(fingerprint, self.hash_size)
        with self.db.session() as conn:
            conn.execute(
                """
                INSERT INTO fingerprints (post_id, fingerprint, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(post_id) DO UPDATE SET
                    fingerprint = excluded.fingerprint,
                    updated_at = excluded.updated_at
                """,
                (int(post_id), fingerprint, time.time()),
            )
        log("dupes", "fingerprint stored post=%d fingerprint=%s", post_id, fingerprint)

    def remove(self, post_id: int) -> bool:
        with self.db.session() as conn:
            cur = conn.execute("DELETE FROM fingerprints WHERE post_id = ?", (int(post_id),))
            removed = cur.rowcount > 0
        if removed:
            log("dupes", "fingerprint removed post=%d", post_id)
        return removed

    def get(self, post_id: int) -> Optional[FingerprintRecord]:
        with self.db.session() as conn:
            row = conn.execute(
                "SELECT post_id, fingerprint FROM fingerprints WHERE post_id = ?",
                (int(post_id),),
            ).fetchone()
        if row is None:
            return None
        return FingerprintRecord(row["post_id"], row["fingerprint"])

    def count(self) -> int:
        with self.db.session() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM fingerprints").fetchone()[0])

    def iter_records(self) -> Iterator[FingerprintRecord]:
        """Yield every record in ascending post id order."""
        conn = self.db.connect()
        try:
            cur = conn.execute("SELECT post_id, fingerprint FROM fingerprints ORDER BY post_id ASC")
            for row in cur:
                yield FingerprintRecord(row["post_id"], row["fingerprint"])
        finally:
            conn.close()

    def find_near_match(
        self,
        fingerprint: Fingerprint,
        max_distance: int = DEFAULT_THRESHOLD,
        *,
        exclude_post_id: Optional[int] = None,
    ) -> Optional[NearMatch]:
        """Like find_near, but also reports the distance of the match."""
        query = fingerprint.lower()
        scanned = 0
        records = self.iter_records()
        try:
            for rec in records:
                if exclude_post_id is not None and rec.post_id == exclude_post_id:
                    continue
                scanned += 1
                dist = hamming_distance(query, rec.fingerprint)
                if dist <= max_distance:
                    log("dupes", "match fingerprint=%s post=%d distance=%d similarity=%.3f scanned=%d",
                        query, rec.post_id, dist, similarity(query, rec.fingerprint), scanned)
                    return NearMatch(rec, dist)
        finally:
            records.close()
        log("dupes", "no match fingerprint=%s scanned=%d", query, scanned)
        return None

    def find_near(
        self,
        fingerprint: Fingerprint,
        max_distance: int = DEFAULT_THRESHOLD,
        *,
        exclude_post_id: Optional[int] = None,
    ) -> Optional[FingerprintRecord]:
        """Return the first record (by post id) within ``max_distance`` bits, or None.

        Raises DistanceMismatchError if a stored fingerprint has a different
        bit length than the query.
        """
        match = self.find_near_match(fingerprint, max_distance, exclude_post_id=exclude_post_id)
        return match.record if match else None
