from pathlib import Path

import pytest

from imcat.db import SCHEMA_VERSION, Database
from imcat.errors import StorageUnavailable


REQUIRED_TABLES = {
    "schema_version",
    "assets",
    "stacks",
    "duplicate_groups",
    "duplicate_members",
    "albums",
    "album_assets",
    "tags",
    "tag_assets",
    "people",
    "asset_faces",
    "asset_audit",
    "notifications",
}


def test_schema_tables_exist(tmp_path: Path) -> None:
    db = Database(tmp_path / "catalog.sqlite3")
    db.initialize()
    with db.connect() as conn:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type IN ('table','view')"
        ).fetchall()
    names = {r["name"] for r in rows}
    assert REQUIRED_TABLES.issubset(names)


def test_initialize_is_idempotent(tmp_path: Path) -> None:
    db = Database(tmp_path / "catalog.sqlite3")
    db.initialize()
    db.initialize()
    with db.connect() as conn:
        row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    assert int(row["version"]) == SCHEMA_VERSION
    assert str(mode).lower() == "wal"


def test_operational_errors_surface_as_storage_unavailable(db: Database) -> None:
    with pytest.raises(StorageUnavailable):
        with db.connect() as conn:
            conn.execute("SELECT * FROM no_such_table")


def test_failed_block_does_not_commit(db: Database) -> None:
    with pytest.raises(RuntimeError):
        with db.connect() as conn:
            conn.execute(
                "INSERT INTO albums(id, owner_id, name, created_at) VALUES('a1', 'u1', 'x', '2024-01-01T00:00:00.000000Z')"
            )
            raise RuntimeError("boom")
    with db.connect() as conn:
        assert conn.execute("SELECT COUNT(*) AS n FROM albums").fetchone()["n"] == 0
