"""Live Photo pairing.

A still and its motion clip carry the same content identifier. Whichever half
is ingested second finds the first and links them; the still points at the
motion asset through ``live_photo_video_id`` and the motion asset is hidden
from the gallery.
"""

from __future__ import annotations

import sqlite3

from imcat.assets import ASSET_SELECT_SQL, asset_type_value, get_by_id, get_live_photo_count, row_to_asset
from imcat.errors import InvalidRange, NotFound
from imcat.models import AssetRecord, AssetType
from imcat.util.time import now_iso


def find_live_photo_match(
    conn: sqlite3.Connection,
    owner_id: str,
    live_photo_cid: str,
    other_asset_id: str,
    type: str | AssetType,
    library_id: str | None = None,
) -> AssetRecord | None:
    row = conn.execute(
        f"""
        {ASSET_SELECT_SQL}
        WHERE a.owner_id = ?
          AND a.live_photo_cid = ?
          AND a.id != ?
          AND a.type = ?
          AND a.library_id IS ?
          AND a.deleted_at IS NULL
        ORDER BY a.created_at, a.id
        LIMIT 1
        """,
        (owner_id, live_photo_cid, other_asset_id, asset_type_value(type), library_id),
    ).fetchone()
    return row_to_asset(row) if row else None


def _require(conn: sqlite3.Connection, asset_id: str) -> AssetRecord:
    asset = get_by_id(conn, asset_id)
    if asset is None:
        raise NotFound(f"asset not found: {asset_id}")
    return asset


def link_live_photo(conn: sqlite3.Connection, still_id: str, motion_id: str) -> None:
    still = _require(conn, still_id)
    motion = _require(conn, motion_id)
    if still.type != AssetType.IMAGE.value or motion.type != AssetType.VIDEO.value:
        raise InvalidRange("a live photo links an IMAGE to a VIDEO")
    if still.owner_id != motion.owner_id:
        raise InvalidRange("live photo halves must share an owner")

    previous = still.live_photo_video_id
    now = now_iso()
    conn.execute(
        "UPDATE assets SET live_photo_video_id = ?, updated_at = ? WHERE id = ?",
        (motion.id, now, still.id),
    )
    conn.execute("UPDATE assets SET is_visible = 0, updated_at = ? WHERE id = ?", (now, motion.id))
    if previous and previous != motion.id:
        _release_motion(conn, previous)


def _release_motion(conn: sqlite3.Connection, motion_id: str) -> None:
    if get_live_photo_count(conn, motion_id) == 0:
        conn.execute(
            "UPDATE assets SET is_visible = 1, updated_at = ? WHERE id = ? AND is_visible = 0",
            (now_iso(), motion_id),
        )


def unlink_live_photo(conn: sqlite3.Connection, still_id: str) -> str | None:
    still = _require(conn, still_id)
    motion_id = still.live_photo_video_id
    if motion_id is None:
        return None
    conn.execute(
        "UPDATE assets SET live_photo_video_id = NULL, updated_at = ? WHERE id = ?",
        (now_iso(), still.id),
    )
    _release_motion(conn, motion_id)
    return motion_id


def pair_on_ingest(conn: sqlite3.Connection, asset: AssetRecord) -> str | None:
    """Link ``asset`` with its other half if that half is already in the catalog.

    Returns the sibling id, or ``None`` when the sibling has not arrived yet; the
    ingest of the missing half will pair them.
    """
    if not asset.live_photo_cid:
        return None
    other_type = AssetType.VIDEO if asset.type == AssetType.IMAGE.value else AssetType.IMAGE
    match = find_live_photo_match(
        conn,
        owner_id=asset.owner_id,
        live_photo_cid=asset.live_photo_cid,
        other_asset_id=asset.id,
        type=other_type,
        library_id=asset.library_id,
    )
    if match is None:
        return None

    if asset.type == AssetType.IMAGE.value:
        still, motion = asset, match
    else:
        still, motion = match, asset
    if still.live_photo_video_id != motion.id:
        link_live_photo(conn, still.id, motion.id)
    return match.id
