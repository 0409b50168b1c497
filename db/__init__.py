"""SQLite helpers for the duplicate-check backend."""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import sqlite3
from typing import Iterator, Union

_SCHEMA_PATH = Path(__file__).resolve().with_name("schema.sql")


class Database:
    """Process-wide storage handle.

    Constructed once at startup and passed to the stores that need it. Every
    call to :meth:`connect` opens a fresh connection so the handle can be
    shared between worker threads.
    """

    def __init__(self, path: Union[str, Path]):
        resolved = Path(path).expanduser()
        if not resolved.is_absolute():
            resolved = resolved.resolve()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        self._path = resolved

    @property
    def path(self) -> Path:
        return self._path

    def connect(self) -> sqlite3.Connection:
        """Return a configured sqlite3 connection."""
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute("PRAGMA busy_timeout = 5000;")
        try:
            conn.execute("PRAGMA journal_mode = WAL;")
        except sqlite3.OperationalError:
            pass
        return conn

    @contextmanager
    def session(self) -> Iterator[sqlite3.Connection]:
        """Context manager that commits on success and always closes."""
        conn = self.connect()
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        """Apply the bundled schema to the database."""
        sql = _SCHEMA_PATH.read_text()
        conn = self.connect()
        try:
            conn.executescript(sql)
            conn.commit()
        finally:
            conn.close()

    def __repr__(self) -> str:
        return f"Database({str(self._path)!r})"


__all__ = [
    "Database",
]
