from __future__ import annotations

import hashlib
from pathlib import Path
import sqlite3
from typing import Any, Callable, Iterator

import pytest

from imcat.db import Database
from imcat.models import AssetCreate


@pytest.fixture(autouse=True)
def _isolated_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))


@pytest.fixture
def db(tmp_path: Path) -> Database:
    database = Database(tmp_path / "catalog.sqlite3")
    database.initialize()
    return database


@pytest.fixture
def conn(db: Database) -> Iterator[sqlite3.Connection]:
    with db.connect() as c:
        yield c


@pytest.fixture
def make_asset() -> Callable[..., AssetCreate]:
    """Build an ``AssetCreate``; the checksum derives from ``content`` (default: ``name``)."""

    def _make(name: str, owner_id: str = "u1", content: str | None = None, **overrides: Any) -> AssetCreate:
        fields: dict[str, Any] = {
            "owner_id": owner_id,
            "device_id": "phone",
            "device_asset_id": name,
            "type": "IMAGE",
            "checksum": hashlib.sha1((content or name).encode("utf-8")).digest(),
            "original_path": f"/upload/{owner_id}/{name}",
            "file_created_at": "2024-05-10T12:00:00.000000Z",
            "file_modified_at": "2024-05-10T12:00:00.000000Z",
            "local_date_time": "2024-05-10T12:00:00",
        }
        fields.update(overrides)
        return AssetCreate(**fields)

    return _make
