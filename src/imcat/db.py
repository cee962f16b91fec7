from __future__ import annotations

from contextlib import contextmanager
import logging
from pathlib import Path
import sqlite3
from typing import Callable, Collection, Iterator, TypeVar

from imcat.errors import StorageUnavailable
from imcat.util.time import now_iso

SETUP_SQL = Path(__file__).resolve().parent / "schema.sql"
SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type IN ('table','view') AND name = ?",
        (name,),
    ).fetchone()
    return row is not None


def _schema_version(conn: sqlite3.Connection) -> int:
    if not _table_exists(conn, "schema_version"):
        return 0
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return int(row["version"]) if row else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        """
        INSERT INTO schema_version(id, version, updated_at)
        VALUES(1, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
          version=excluded.version,
          updated_at=excluded.updated_at
        """,
        (version, now_iso()),
    )


def placeholders(values: Collection[object]) -> str:
    return ",".join("?" for _ in values)


def insert_or_get(
    conn: sqlite3.Connection,
    insert: Callable[[sqlite3.Connection], T],
    lookup: Callable[[sqlite3.Connection], T | None],
) -> tuple[T, bool]:
    """Run ``insert``; if a unique constraint rejects it, return what ``lookup`` finds.

    Returns ``(value, created)``. SQLite aborts only the failing statement, so
    the lookup runs inside the same transaction and sees the winning row. When
    the lookup finds nothing the conflict was not the one the caller keys on
    and the ``IntegrityError`` propagates.
    """
    try:
        return insert(conn), True
    except sqlite3.IntegrityError as exc:
        existing = lookup(conn)
        if existing is None:
            raise
        logger.debug("unique conflict resolved to existing row: %s", exc)
        return existing, False


class Database:
    def __init__(self, path: Path, timeout: float = 30.0):
        self.path = path
        self.timeout = timeout
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.path, timeout=self.timeout)
        except sqlite3.OperationalError as exc:
            raise StorageUnavailable(f"cannot open {self.path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
            yield conn
            conn.commit()
        except sqlite3.OperationalError as exc:
            raise StorageUnavailable(str(exc)) from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        sql = SETUP_SQL.read_text()
        with self.connect() as conn:
            conn.executescript(sql)
            if _schema_version(conn) < SCHEMA_VERSION:
                _set_schema_version(conn, SCHEMA_VERSION)
