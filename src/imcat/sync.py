"""Full and delta synchronization pages.

Full sync walks one owner's assets in ``id`` order under a fixed
``updated_until`` ceiling captured when the session starts; rows written after
that ceiling are left to the next delta sync. Delta sync walks
``(updated_at, id)`` order strictly after a watermark.

Both are stateless: the caller carries the cursor and may stop at any page.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import sqlite3
from typing import Any

from imcat.assets import ASSET_SELECT_SQL, row_to_asset
from imcat.db import placeholders
from imcat.errors import InvalidRange
from imcat.models import AssetRecord
from imcat.util.time import days_ago, normalize_timestamp, parse_iso


@dataclass(slots=True)
class FullSyncOptions:
    owner_id: str
    updated_until: str | datetime
    limit: int
    last_id: str | None = None


@dataclass(slots=True)
class DeltaSyncOptions:
    user_ids: list[str]
    updated_after: str | datetime
    limit: int
    after_id: str | None = None


@dataclass(slots=True)
class DeltaSyncPage:
    upserted: list[AssetRecord] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    needs_full_sync: bool = False
    has_more: bool = False
    watermark: str | None = None
    last_id: str | None = None


def _check_limit(limit: int) -> None:
    if limit <= 0:
        raise InvalidRange(f"limit must be positive, got {limit}")


def sync_timestamp(value: str | datetime, name: str) -> str:
    try:
        return normalize_timestamp(value)
    except ValueError as exc:
        raise InvalidRange(f"invalid {name}: {value}") from exc


def get_all_for_user_full_sync(conn: sqlite3.Connection, options: FullSyncOptions) -> list[AssetRecord]:
    _check_limit(options.limit)
    until = sync_timestamp(options.updated_until, "updated_until")

    clauses = ["a.owner_id = ?", "a.updated_at <= ?"]
    args: list[Any] = [options.owner_id, until]
    if options.last_id:
        clauses.append("a.id > ?")
        args.append(options.last_id)

    rows = conn.execute(
        f"""
        {ASSET_SELECT_SQL}
        WHERE {' AND '.join(clauses)}
        ORDER BY a.id
        LIMIT ?
        """,
        (*args, options.limit),
    ).fetchall()
    return [row_to_asset(r) for r in rows]


def get_changed_delta_sync(conn: sqlite3.Connection, options: DeltaSyncOptions) -> list[AssetRecord]:
    """Assets of ``user_ids`` changed after the watermark, oldest change first.

    With ``after_id`` the cursor is the exact ``(updated_at, id)`` keyset and a
    page never exceeds ``limit``; an empty ``after_id`` starts such a walk.
    Without it a full page is extended with the remaining rows that share its
    last ``updated_at``, so a caller that only keeps the newest timestamp it
    saw cannot skip a row on the next call.
    """
    _check_limit(options.limit)
    if not options.user_ids:
        raise InvalidRange("user_ids must not be empty")
    after = sync_timestamp(options.updated_after, "updated_after")
    owners = f"a.owner_id IN ({placeholders(options.user_ids)})"

    if options.after_id is not None:
        cursor = "(a.updated_at > ? OR (a.updated_at = ? AND a.id > ?))"
        cursor_args: list[Any] = [after, after, options.after_id]
    else:
        cursor = "a.updated_at > ?"
        cursor_args = [after]

    rows = conn.execute(
        f"""
        {ASSET_SELECT_SQL}
        WHERE {owners} AND {cursor}
        ORDER BY a.updated_at, a.id
        LIMIT ?
        """,
        (*options.user_ids, *cursor_args, options.limit),
    ).fetchall()
    page = [row_to_asset(r) for r in rows]

    if options.after_id is not None or len(page) < options.limit:
        return page

    boundary = page[-1]
    rest = conn.execute(
        f"""
        {ASSET_SELECT_SQL}
        WHERE {owners} AND a.updated_at = ? AND a.id > ?
        ORDER BY a.id
        """,
        (*options.user_ids, boundary.updated_at, boundary.id),
    ).fetchall()
    page.extend(row_to_asset(r) for r in rest)
    return page


def get_deleted_since(conn: sqlite3.Connection, user_ids: list[str], deleted_after: str | datetime) -> list[str]:
    if not user_ids:
        raise InvalidRange("user_ids must not be empty")
    after = sync_timestamp(deleted_after, "deleted_after")
    rows = conn.execute(
        f"""
        SELECT DISTINCT asset_id
        FROM asset_audit
        WHERE owner_id IN ({placeholders(user_ids)}) AND deleted_at > ?
        ORDER BY asset_id
        """,
        (*user_ids, after),
    ).fetchall()
    return [str(r["asset_id"]) for r in rows]


def needs_full_sync(updated_after: str | datetime, audit_retention_days: float, now: datetime | None = None) -> bool:
    """A watermark older than the audit log may have missed hard deletions."""
    after = parse_iso(sync_timestamp(updated_after, "updated_after"))
    return after < days_ago(audit_retention_days, now)


def delta_sync(
    conn: sqlite3.Connection,
    options: DeltaSyncOptions,
    audit_retention_days: float,
    now: datetime | None = None,
) -> DeltaSyncPage:
    if needs_full_sync(options.updated_after, audit_retention_days, now=now):
        return DeltaSyncPage(needs_full_sync=True)

    upserted = get_changed_delta_sync(conn, options)
    deleted = get_deleted_since(conn, options.user_ids, options.updated_after)
    last = upserted[-1] if upserted else None
    return DeltaSyncPage(
        upserted=upserted,
        deleted=deleted,
        has_more=len(upserted) >= options.limit,
        watermark=last.updated_at if last else sync_timestamp(options.updated_after, "updated_after"),
        last_id=last.id if last else options.after_id,
    )
