"""Duplicate groups.

Membership lives in ``duplicate_members`` keyed by asset id, so an asset is in
at most one group. A group that drops below two members is dissolved at the
end of every mutation; readers also skip groups with fewer than two visible,
untrashed members.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import sqlite3
from typing import Any, Iterable

from imcat.assets import ASSET_SELECT_SQL, get_by_id, row_to_asset, soft_delete_all, touch_assets
from imcat.db import placeholders
from imcat.errors import InvalidRange, NotFound
from imcat.ids import new_id
from imcat.media.phash import phash_distance
from imcat.models import AssetRecord
from imcat.util.time import now_iso

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DuplicateUpdate:
    target_duplicate_id: str | None
    asset_ids: list[str]
    duplicate_ids: list[str] = field(default_factory=list)
    exclude_asset_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class DuplicateGroup:
    duplicate_id: str
    assets: list[AssetRecord]


def _members_of(conn: sqlite3.Connection, group_ids: list[str]) -> list[str]:
    if not group_ids:
        return []
    rows = conn.execute(
        f"SELECT asset_id FROM duplicate_members WHERE duplicate_id IN ({placeholders(group_ids)}) ORDER BY asset_id",
        tuple(group_ids),
    ).fetchall()
    return [str(r["asset_id"]) for r in rows]


def _owners(conn: sqlite3.Connection, asset_ids: list[str]) -> dict[str, str]:
    rows = conn.execute(
        f"SELECT id, owner_id FROM assets WHERE id IN ({placeholders(asset_ids)})",
        tuple(asset_ids),
    ).fetchall()
    return {str(r["id"]): str(r["owner_id"]) for r in rows}


def _release(conn: sqlite3.Connection, asset_ids: list[str]) -> int:
    if not asset_ids:
        return 0
    cur = conn.execute(
        f"DELETE FROM duplicate_members WHERE asset_id IN ({placeholders(asset_ids)})",
        tuple(asset_ids),
    )
    return int(cur.rowcount)


def _drop_groups(conn: sqlite3.Connection, group_ids: list[str]) -> None:
    if group_ids:
        conn.execute(f"DELETE FROM duplicate_groups WHERE id IN ({placeholders(group_ids)})", tuple(group_ids))


def dissolve_undersized_groups(conn: sqlite3.Connection, live_only: bool = False) -> list[str]:
    """Delete groups with fewer than two members; returns the ids of released assets.

    With ``live_only`` only visible, untrashed members count.
    """
    live = "AND x.deleted_at IS NULL AND x.is_visible = 1" if live_only else ""
    groups = conn.execute(
        f"""
        SELECT g.id
        FROM duplicate_groups g
        LEFT JOIN duplicate_members m ON m.duplicate_id = g.id
        LEFT JOIN assets x ON x.id = m.asset_id {live}
        GROUP BY g.id
        HAVING COUNT(x.id) < 2
        """
    ).fetchall()
    group_ids = [str(r["id"]) for r in groups]
    if not group_ids:
        return []
    released = _members_of(conn, group_ids)
    _drop_groups(conn, group_ids)
    touch_assets(conn, released)
    logger.debug("dissolved %d duplicate groups", len(group_ids))
    return released


def trash_assets(conn: sqlite3.Connection, asset_ids: Iterable[str]) -> int:
    """Soft-delete assets and dissolve the groups they leave without a live pair."""
    trashed = soft_delete_all(conn, asset_ids)
    if trashed:
        dissolve_undersized_groups(conn, live_only=True)
    return trashed


def update_duplicates(conn: sqlite3.Connection, update: DuplicateUpdate) -> None:
    """Retarget ``asset_ids`` and every member of ``duplicate_ids`` to one group.

    A ``None`` target removes all of them from grouping instead. Members of a
    source group listed in ``exclude_asset_ids`` always leave grouping.
    """
    source_groups = [g for g in dict.fromkeys(update.duplicate_ids) if g != update.target_duplicate_id]
    excluded = set(update.exclude_asset_ids)
    previous = _members_of(conn, source_groups)
    moved = [a for a in previous if a not in excluded]
    members = list(dict.fromkeys([*update.asset_ids, *moved]))

    if update.target_duplicate_id is None:
        affected = list(dict.fromkeys([*members, *previous]))
        _release(conn, affected)
        touch_assets(conn, affected)
        _drop_groups(conn, source_groups)
        dissolve_undersized_groups(conn)
        return

    target = update.target_duplicate_id
    if members:
        owners = _owners(conn, members)
        missing = [a for a in members if a not in owners]
        if missing:
            raise NotFound(f"assets not found: {', '.join(missing)}")
        owner_ids = set(owners.values())
        group = conn.execute("SELECT owner_id FROM duplicate_groups WHERE id = ?", (target,)).fetchone()
        if group is not None:
            owner_ids.add(str(group["owner_id"]))
        if len(owner_ids) > 1:
            raise InvalidRange("a duplicate group cannot span owners")
        if group is None:
            conn.execute(
                "INSERT INTO duplicate_groups(id, owner_id, created_at) VALUES(?, ?, ?)",
                (target, owner_ids.pop(), now_iso()),
            )
        conn.executemany(
            """
            INSERT INTO duplicate_members(asset_id, duplicate_id) VALUES(?, ?)
            ON CONFLICT(asset_id) DO UPDATE SET duplicate_id = excluded.duplicate_id
            """,
            [(a, target) for a in members],
        )

    dropped = [a for a in previous if a in excluded]
    _release(conn, dropped)
    touch_assets(conn, [*members, *dropped])
    _drop_groups(conn, source_groups)
    dissolve_undersized_groups(conn)


def get_duplicates(conn: sqlite3.Connection, owner_id: str) -> list[DuplicateGroup]:
    rows = conn.execute(
        f"""
        {ASSET_SELECT_SQL}
        WHERE dm.duplicate_id IS NOT NULL
          AND a.owner_id = ?
          AND a.deleted_at IS NULL
          AND a.is_visible = 1
        ORDER BY dm.duplicate_id, a.local_date_time, a.id
        """,
        (owner_id,),
    ).fetchall()

    grouped: dict[str, list[AssetRecord]] = {}
    for row in rows:
        asset = row_to_asset(row)
        grouped.setdefault(str(asset.duplicate_id), []).append(asset)
    return [DuplicateGroup(duplicate_id=gid, assets=assets) for gid, assets in grouped.items() if len(assets) >= 2]


def resolve_duplicates(
    conn: sqlite3.Connection,
    duplicate_id: str,
    keep_ids: Iterable[str],
    trash_ids: Iterable[str],
) -> dict[str, Any]:
    """Apply a keep/discard decision: trash the discarded members and dissolve the group."""
    members = set(_members_of(conn, [duplicate_id]))
    if not members:
        raise NotFound(f"duplicate group not found: {duplicate_id}")
    keep = list(dict.fromkeys(keep_ids))
    trash = list(dict.fromkeys(trash_ids))
    outside = [a for a in [*keep, *trash] if a not in members]
    if outside:
        raise InvalidRange(f"assets are not in group {duplicate_id}: {', '.join(outside)}")
    if set(keep) & set(trash):
        raise InvalidRange("an asset cannot be both kept and trashed")

    trashed = soft_delete_all(conn, trash)
    update_duplicates(conn, DuplicateUpdate(target_duplicate_id=None, asset_ids=[], duplicate_ids=[duplicate_id]))
    return {"duplicate_id": duplicate_id, "kept": len(keep), "trashed": trashed}


def search_duplicates(conn: sqlite3.Connection, asset: AssetRecord, max_distance: int) -> list[AssetRecord]:
    """Same-owner assets whose perceptual hash lies within ``max_distance`` bits."""
    if not asset.phash:
        return []
    rows = conn.execute(
        f"""
        {ASSET_SELECT_SQL}
        WHERE a.owner_id = ?
          AND a.id != ?
          AND a.type = ?
          AND a.phash IS NOT NULL
          AND a.deleted_at IS NULL
          AND a.is_visible = 1
        ORDER BY a.id
        """,
        (asset.owner_id, asset.id, asset.type),
    ).fetchall()
    hits: list[AssetRecord] = []
    for row in rows:
        candidate = row_to_asset(row)
        if phash_distance(asset.phash, str(candidate.phash)) <= max_distance:
            hits.append(candidate)
    return hits


def detect_for_asset(conn: sqlite3.Connection, asset: AssetRecord, max_distance: int) -> str | None:
    """Group ``asset`` with its near-duplicates, merging any groups they already belong to."""
    hits = search_duplicates(conn, asset, max_distance)
    if not hits:
        return None

    group_ids = list(dict.fromkeys(h.duplicate_id for h in hits if h.duplicate_id))
    target = asset.duplicate_id or (group_ids[0] if group_ids else new_id())
    asset_ids = [h.id for h in hits if h.duplicate_id != target]
    asset_ids.append(asset.id)
    update_duplicates(
        conn,
        DuplicateUpdate(
            target_duplicate_id=target,
            asset_ids=asset_ids,
            duplicate_ids=[g for g in group_ids if g != target],
        ),
    )
    return target


def detect_duplicates(conn: sqlite3.Connection, owner_id: str, max_distance: int) -> dict[str, int]:
    rows = conn.execute(
        """
        SELECT id FROM assets
        WHERE owner_id = ? AND phash IS NOT NULL AND deleted_at IS NULL AND is_visible = 1
        ORDER BY created_at, id
        """,
        (owner_id,),
    ).fetchall()

    checked = 0
    for row in rows:
        # Re-read: earlier iterations may have moved this asset into a group.
        asset = get_by_id(conn, str(row["id"]))
        if asset is None:
            continue
        checked += 1
        detect_for_asset(conn, asset, max_distance)

    groups = get_duplicates(conn, owner_id)
    return {"checked": checked, "groups": len(groups), "grouped_assets": sum(len(g.assets) for g in groups)}
