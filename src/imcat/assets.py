from __future__ import annotations

import logging
from pathlib import PurePath
import sqlite3
from typing import Any, Iterable

from imcat.db import placeholders
from imcat.errors import InvalidRange, NotFound
from imcat.ids import new_id
from imcat.models import AssetCreate, AssetRecord, AssetType
from imcat.util.time import normalize_local, now_iso

logger = logging.getLogger(__name__)

ASSET_COLUMNS = """
a.id, a.owner_id, a.library_id, a.device_id, a.device_asset_id, a.type, a.checksum,
a.original_path, a.original_file_name, a.file_created_at, a.file_modified_at,
a.local_date_time, a.created_at, a.updated_at, a.deleted_at,
a.is_favorite, a.is_archived, a.is_offline, a.is_visible,
a.stack_id, a.live_photo_cid, a.live_photo_video_id, a.phash, a.width, a.height,
dm.duplicate_id
"""

ASSET_FROM = "assets a LEFT JOIN duplicate_members dm ON dm.asset_id = a.id"

ASSET_SELECT_SQL = f"SELECT {ASSET_COLUMNS} FROM {ASSET_FROM}"

# Columns callers may set through update_asset/update_all. Pairing and stacks
# go through link_live_photo and create_stack.
UPDATABLE_FIELDS = {
    "original_path",
    "original_file_name",
    "file_created_at",
    "file_modified_at",
    "local_date_time",
    "is_favorite",
    "is_archived",
    "is_offline",
    "live_photo_cid",
    "phash",
    "width",
    "height",
}


def row_to_asset(row: sqlite3.Row) -> AssetRecord:
    return AssetRecord(
        id=str(row["id"]),
        owner_id=str(row["owner_id"]),
        library_id=row["library_id"],
        device_id=str(row["device_id"]),
        device_asset_id=str(row["device_asset_id"]),
        type=str(row["type"]),
        checksum=bytes(row["checksum"]),
        original_path=str(row["original_path"]),
        original_file_name=str(row["original_file_name"]),
        file_created_at=str(row["file_created_at"]),
        file_modified_at=str(row["file_modified_at"]),
        local_date_time=str(row["local_date_time"]),
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
        deleted_at=row["deleted_at"],
        is_favorite=bool(row["is_favorite"]),
        is_archived=bool(row["is_archived"]),
        is_offline=bool(row["is_offline"]),
        is_visible=bool(row["is_visible"]),
        stack_id=row["stack_id"],
        live_photo_cid=row["live_photo_cid"],
        live_photo_video_id=row["live_photo_video_id"],
        phash=row["phash"],
        width=row["width"],
        height=row["height"],
        duplicate_id=row["duplicate_id"],
    )


def asset_type_value(value: str | AssetType) -> str:
    raw = value.value if isinstance(value, AssetType) else str(value).upper()
    if raw not in {t.value for t in AssetType}:
        raise InvalidRange(f"unsupported asset type: {value}")
    return raw


def _local(value: str) -> str:
    try:
        return normalize_local(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRange(f"invalid local_date_time: {value!r}") from exc


def create_asset(conn: sqlite3.Connection, asset: AssetCreate, asset_id: str | None = None) -> AssetRecord:
    if not asset.checksum:
        raise InvalidRange("asset checksum must not be empty")
    local_date_time = _local(asset.local_date_time)
    aid = asset_id or new_id()
    now = now_iso()
    conn.execute(
        """
        INSERT INTO assets(
          id, owner_id, library_id, device_id, device_asset_id, type, checksum,
          original_path, original_file_name, file_created_at, file_modified_at,
          local_date_time, created_at, updated_at,
          is_favorite, is_archived, is_visible, live_photo_cid, phash, width, height
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            aid,
            asset.owner_id,
            asset.library_id,
            asset.device_id,
            asset.device_asset_id,
            asset_type_value(asset.type),
            asset.checksum,
            asset.original_path,
            asset.original_file_name or PurePath(asset.original_path).name,
            asset.file_created_at,
            asset.file_modified_at,
            local_date_time,
            now,
            now,
            int(asset.is_favorite),
            int(asset.is_archived),
            int(asset.is_visible),
            asset.live_photo_cid,
            asset.phash,
            asset.width,
            asset.height,
        ),
    )
    created = get_by_id(conn, aid)
    assert created is not None
    return created


def get_by_id(conn: sqlite3.Connection, asset_id: str) -> AssetRecord | None:
    row = conn.execute(f"{ASSET_SELECT_SQL} WHERE a.id = ?", (asset_id,)).fetchone()
    return row_to_asset(row) if row else None


def get_by_ids(conn: sqlite3.Connection, asset_ids: Iterable[str]) -> list[AssetRecord]:
    ids = list(dict.fromkeys(asset_ids))
    if not ids:
        return []
    rows = conn.execute(f"{ASSET_SELECT_SQL} WHERE a.id IN ({placeholders(ids)})", tuple(ids)).fetchall()
    by_id = {str(r["id"]): row_to_asset(r) for r in rows}
    return [by_id[i] for i in ids if i in by_id]


def get_by_checksum(
    conn: sqlite3.Connection,
    owner_id: str,
    checksum: bytes,
    library_id: str | None = None,
) -> AssetRecord | None:
    row = conn.execute(
        f"{ASSET_SELECT_SQL} WHERE a.owner_id = ? AND a.checksum = ? AND a.library_id IS ?",
        (owner_id, checksum, library_id),
    ).fetchone()
    return row_to_asset(row) if row else None


def get_by_checksums(conn: sqlite3.Connection, owner_id: str, checksums: Iterable[bytes]) -> list[AssetRecord]:
    values = list(dict.fromkeys(checksums))
    if not values:
        return []
    rows = conn.execute(
        f"""
        {ASSET_SELECT_SQL}
        WHERE a.owner_id = ? AND a.library_id IS NULL AND a.checksum IN ({placeholders(values)})
        """,
        (owner_id, *values),
    ).fetchall()
    return [row_to_asset(r) for r in rows]


def get_upload_asset_id_by_checksum(conn: sqlite3.Connection, owner_id: str, checksum: bytes) -> str | None:
    row = conn.execute(
        "SELECT id FROM assets WHERE owner_id = ? AND checksum = ? AND library_id IS NULL",
        (owner_id, checksum),
    ).fetchone()
    return str(row["id"]) if row else None


def get_by_device_asset(
    conn: sqlite3.Connection,
    owner_id: str,
    device_id: str,
    device_asset_id: str,
) -> AssetRecord | None:
    row = conn.execute(
        f"{ASSET_SELECT_SQL} WHERE a.owner_id = ? AND a.device_id = ? AND a.device_asset_id = ?",
        (owner_id, device_id, device_asset_id),
    ).fetchone()
    return row_to_asset(row) if row else None


def get_by_device_ids(
    conn: sqlite3.Connection,
    owner_id: str,
    device_id: str,
    device_asset_ids: Iterable[str],
) -> list[str]:
    """Return the subset of ``device_asset_ids`` this device already registered."""
    ids = list(dict.fromkeys(device_asset_ids))
    if not ids:
        return []
    rows = conn.execute(
        f"""
        SELECT device_asset_id FROM assets
        WHERE owner_id = ? AND device_id = ? AND device_asset_id IN ({placeholders(ids)})
        ORDER BY device_asset_id
        """,
        (owner_id, device_id, *ids),
    ).fetchall()
    return [str(r["device_asset_id"]) for r in rows]


def get_all_by_device_id(conn: sqlite3.Connection, owner_id: str, device_id: str) -> list[str]:
    rows = conn.execute(
        """
        SELECT device_asset_id FROM assets
        WHERE owner_id = ? AND device_id = ? AND is_visible = 1 AND deleted_at IS NULL
        ORDER BY device_asset_id
        """,
        (owner_id, device_id),
    ).fetchall()
    return [str(r["device_asset_id"]) for r in rows]


def _assignments(fields: dict[str, Any]) -> tuple[str, list[Any]]:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise InvalidRange(f"fields cannot be updated: {', '.join(sorted(unknown))}")
    cols: list[str] = []
    args: list[Any] = []
    for name, value in fields.items():
        if name == "local_date_time":
            value = _local(value)
        cols.append(f"{name} = ?")
        args.append(int(value) if isinstance(value, bool) else value)
    cols.append("updated_at = ?")
    args.append(now_iso())
    return ", ".join(cols), args


def update_asset(conn: sqlite3.Connection, asset_id: str, **fields: Any) -> AssetRecord:
    assignments, args = _assignments(fields)
    cur = conn.execute(f"UPDATE assets SET {assignments} WHERE id = ?", (*args, asset_id))
    if cur.rowcount == 0:
        raise NotFound(f"asset not found: {asset_id}")
    updated = get_by_id(conn, asset_id)
    assert updated is not None
    return updated


def update_all(conn: sqlite3.Connection, asset_ids: Iterable[str], **fields: Any) -> int:
    ids = list(dict.fromkeys(asset_ids))
    if not ids:
        return 0
    assignments, args = _assignments(fields)
    cur = conn.execute(f"UPDATE assets SET {assignments} WHERE id IN ({placeholders(ids)})", (*args, *ids))
    return int(cur.rowcount)


def touch_assets(conn: sqlite3.Connection, asset_ids: Iterable[str]) -> int:
    """Bump ``updated_at`` so delta sync re-delivers rows whose derived state changed."""
    ids = list(dict.fromkeys(asset_ids))
    if not ids:
        return 0
    cur = conn.execute(
        f"UPDATE assets SET updated_at = ? WHERE id IN ({placeholders(ids)})",
        (now_iso(), *ids),
    )
    return int(cur.rowcount)


def soft_delete_all(conn: sqlite3.Connection, asset_ids: Iterable[str]) -> int:
    ids = list(dict.fromkeys(asset_ids))
    if not ids:
        return 0
    now = now_iso()
    cur = conn.execute(
        f"UPDATE assets SET deleted_at = ?, updated_at = ? WHERE deleted_at IS NULL AND id IN ({placeholders(ids)})",
        (now, now, *ids),
    )
    return int(cur.rowcount)


def restore_all(conn: sqlite3.Connection, asset_ids: Iterable[str]) -> int:
    ids = list(dict.fromkeys(asset_ids))
    if not ids:
        return 0
    cur = conn.execute(
        f"UPDATE assets SET deleted_at = NULL, updated_at = ? WHERE deleted_at IS NOT NULL AND id IN ({placeholders(ids)})",
        (now_iso(), *ids),
    )
    return int(cur.rowcount)


def get_live_photo_count(conn: sqlite3.Connection, motion_id: str) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM assets WHERE live_photo_video_id = ?",
        (motion_id,),
    ).fetchone()
    return int(row["n"])


def _delete_row(conn: sqlite3.Connection, asset_id: str, owner_id: str) -> None:
    conn.execute("DELETE FROM assets WHERE id = ?", (asset_id,))
    conn.execute(
        "INSERT INTO asset_audit(asset_id, owner_id, deleted_at) VALUES(?, ?, ?)",
        (asset_id, owner_id, now_iso()),
    )


def remove_asset(conn: sqlite3.Connection, asset_id: str) -> list[str]:
    """Hard delete an asset, recording it in the audit log.

    A still's motion half goes with it unless another still still links it.
    Returns every removed id.
    """
    asset = get_by_id(conn, asset_id)
    if asset is None:
        return []
    stills = conn.execute("SELECT id FROM assets WHERE live_photo_video_id = ?", (asset.id,)).fetchall()
    touch_assets(conn, [str(r["id"]) for r in stills])
    _delete_row(conn, asset.id, asset.owner_id)
    removed = [asset.id]

    motion_id = asset.live_photo_video_id
    if motion_id and get_live_photo_count(conn, motion_id) == 0:
        motion = get_by_id(conn, motion_id)
        if motion is not None:
            _delete_row(conn, motion.id, motion.owner_id)
            removed.append(motion.id)

    logger.debug("removed assets %s", removed)
    return removed


def get_statistics(
    conn: sqlite3.Connection,
    owner_id: str,
    is_favorite: bool | None = None,
    is_archived: bool | None = None,
    is_trashed: bool | None = None,
) -> dict[str, int]:
    clauses = ["owner_id = ?", "is_visible = 1"]
    args: list[Any] = [owner_id]
    if is_favorite is not None:
        clauses.append("is_favorite = ?")
        args.append(int(is_favorite))
    if is_archived is not None:
        clauses.append("is_archived = ?")
        args.append(int(is_archived))
    clauses.append("deleted_at IS NOT NULL" if is_trashed else "deleted_at IS NULL")

    rows = conn.execute(
        f"SELECT type, COUNT(*) AS n FROM assets WHERE {' AND '.join(clauses)} GROUP BY type",
        tuple(args),
    ).fetchall()
    counts = {str(r["type"]): int(r["n"]) for r in rows}
    images = counts.get(AssetType.IMAGE.value, 0)
    videos = counts.get(AssetType.VIDEO.value, 0)
    return {"images": images, "videos": videos, "total": images + videos}
