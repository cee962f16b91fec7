"""Albums, tags, people and stacks.

These only exist so gallery queries can filter by them; their own editing
surface is deliberately small.
"""

from __future__ import annotations

import sqlite3
from typing import Iterable

from imcat.assets import get_by_ids, touch_assets
from imcat.db import insert_or_get
from imcat.errors import InvalidRange, NotFound
from imcat.ids import new_id
from imcat.util.time import now_iso


def create_album(conn: sqlite3.Connection, owner_id: str, name: str) -> str:
    album_id = new_id()
    conn.execute(
        "INSERT INTO albums(id, owner_id, name, created_at) VALUES(?, ?, ?, ?)",
        (album_id, owner_id, name, now_iso()),
    )
    return album_id


def add_assets_to_album(conn: sqlite3.Connection, album_id: str, asset_ids: Iterable[str]) -> int:
    if conn.execute("SELECT 1 FROM albums WHERE id = ?", (album_id,)).fetchone() is None:
        raise NotFound(f"album not found: {album_id}")
    now = now_iso()
    cur = conn.executemany(
        "INSERT OR IGNORE INTO album_assets(album_id, asset_id, created_at) VALUES(?, ?, ?)",
        [(album_id, a, now) for a in dict.fromkeys(asset_ids)],
    )
    return int(cur.rowcount)


def create_tag(conn: sqlite3.Connection, owner_id: str, value: str) -> str:
    def _insert(c: sqlite3.Connection) -> str:
        tag_id = new_id()
        c.execute(
            "INSERT INTO tags(id, owner_id, value, created_at) VALUES(?, ?, ?, ?)",
            (tag_id, owner_id, value, now_iso()),
        )
        return tag_id

    def _lookup(c: sqlite3.Connection) -> str | None:
        row = c.execute("SELECT id FROM tags WHERE owner_id = ? AND value = ?", (owner_id, value)).fetchone()
        return str(row["id"]) if row else None

    existing = _lookup(conn)
    if existing is not None:
        return existing
    tag_id, _ = insert_or_get(conn, _insert, _lookup)
    return tag_id


def tag_assets(conn: sqlite3.Connection, tag_id: str, asset_ids: Iterable[str]) -> int:
    ids = list(dict.fromkeys(asset_ids))
    cur = conn.executemany(
        "INSERT OR IGNORE INTO tag_assets(tag_id, asset_id) VALUES(?, ?)",
        [(tag_id, a) for a in ids],
    )
    touch_assets(conn, ids)
    return int(cur.rowcount)


def create_person(conn: sqlite3.Connection, owner_id: str, name: str = "") -> str:
    person_id = new_id()
    conn.execute(
        "INSERT INTO people(id, owner_id, name, created_at) VALUES(?, ?, ?, ?)",
        (person_id, owner_id, name, now_iso()),
    )
    return person_id


def add_face(conn: sqlite3.Connection, asset_id: str, person_id: str | None) -> int:
    cur = conn.execute("INSERT INTO asset_faces(asset_id, person_id) VALUES(?, ?)", (asset_id, person_id))
    return int(cur.lastrowid or 0)


def create_stack(conn: sqlite3.Connection, primary_asset_id: str, asset_ids: Iterable[str]) -> str:
    """Stack ``asset_ids`` behind ``primary_asset_id``; all must share one owner."""
    ids = list(dict.fromkeys([primary_asset_id, *asset_ids]))
    assets = get_by_ids(conn, ids)
    if len(assets) != len(ids):
        found = {a.id for a in assets}
        raise NotFound(f"assets not found: {', '.join(i for i in ids if i not in found)}")
    owners = {a.owner_id for a in assets}
    if len(owners) > 1:
        raise InvalidRange("a stack cannot span owners")

    stack_id = new_id()
    now = now_iso()
    conn.execute(
        "INSERT INTO stacks(id, owner_id, primary_asset_id, created_at) VALUES(?, ?, ?, ?)",
        (stack_id, owners.pop(), primary_asset_id, now),
    )
    conn.executemany(
        "UPDATE assets SET stack_id = ?, updated_at = ? WHERE id = ?",
        [(stack_id, now, a) for a in ids],
    )
    return stack_id
