from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
import sqlite3
from typing import Any

from imcat.assets import ASSET_SELECT_SQL, asset_type_value, row_to_asset
from imcat.db import placeholders
from imcat.errors import InvalidRange
from imcat.models import AssetOrder, AssetRecord, TimeBucketSize


@dataclass(slots=True)
class TimeBucketOptions:
    size: str | TimeBucketSize = TimeBucketSize.MONTH
    order: str | AssetOrder = AssetOrder.DESC
    user_ids: list[str] = field(default_factory=list)
    is_favorite: bool | None = None
    is_archived: bool | None = None
    is_trashed: bool | None = None
    is_duplicate: bool | None = None
    album_id: str | None = None
    tag_id: str | None = None
    person_id: str | None = None
    with_stacked: bool = False
    asset_type: str | None = None


@dataclass(slots=True)
class TimeBucketItem:
    time_bucket: str
    count: int


def _size(options: TimeBucketOptions) -> TimeBucketSize:
    raw = options.size.value if isinstance(options.size, TimeBucketSize) else str(options.size).upper()
    try:
        return TimeBucketSize(raw)
    except ValueError as exc:
        raise InvalidRange(f"unsupported time bucket size: {options.size}") from exc


def _direction(options: TimeBucketOptions) -> str:
    raw = options.order.value if isinstance(options.order, AssetOrder) else str(options.order).lower()
    try:
        return "ASC" if AssetOrder(raw) is AssetOrder.ASC else "DESC"
    except ValueError as exc:
        raise InvalidRange(f"unsupported order: {options.order}") from exc


def _bucket_expr(size: TimeBucketSize) -> str:
    if size is TimeBucketSize.DAY:
        return "substr(a.local_date_time, 1, 10)"
    return "substr(a.local_date_time, 1, 7) || '-01'"


# A group only counts while another visible, untrashed member shares it.
_DUPLICATE_SQL = """(
  dm.duplicate_id IS NOT NULL AND EXISTS (
    SELECT 1 FROM duplicate_members om JOIN assets o ON o.id = om.asset_id
    WHERE om.duplicate_id = dm.duplicate_id AND o.id <> a.id AND o.deleted_at IS NULL AND o.is_visible = 1
  )
)"""


def _apply_filters_sql(options: TimeBucketOptions) -> tuple[str, list[Any]]:
    # Linked motion halves are never shown on their own.
    clauses = ["a.is_visible = 1"]
    args: list[Any] = []

    if options.user_ids:
        clauses.append(f"a.owner_id IN ({placeholders(options.user_ids)})")
        args.extend(options.user_ids)
    elif options.album_id is None:
        raise InvalidRange("user_ids or album_id is required")

    if options.is_favorite is not None:
        clauses.append("a.is_favorite = ?")
        args.append(int(options.is_favorite))
    if options.is_archived is not None:
        clauses.append("a.is_archived = ?")
        args.append(int(options.is_archived))
    clauses.append("a.deleted_at IS NOT NULL" if options.is_trashed else "a.deleted_at IS NULL")

    if options.is_duplicate is not None:
        clauses.append(_DUPLICATE_SQL if options.is_duplicate else f"NOT {_DUPLICATE_SQL}")
    if options.album_id:
        clauses.append("EXISTS (SELECT 1 FROM album_assets aa WHERE aa.asset_id = a.id AND aa.album_id = ?)")
        args.append(options.album_id)
    if options.tag_id:
        clauses.append("EXISTS (SELECT 1 FROM tag_assets ta WHERE ta.asset_id = a.id AND ta.tag_id = ?)")
        args.append(options.tag_id)
    if options.person_id:
        clauses.append("EXISTS (SELECT 1 FROM asset_faces f WHERE f.asset_id = a.id AND f.person_id = ?)")
        args.append(options.person_id)
    if options.with_stacked:
        clauses.append(
            "(a.stack_id IS NULL OR EXISTS (SELECT 1 FROM stacks s WHERE s.id = a.stack_id AND s.primary_asset_id = a.id))"
        )
    if options.asset_type:
        clauses.append("a.type = ?")
        args.append(asset_type_value(options.asset_type))

    return " AND ".join(clauses), args


def bucket_range(time_bucket: str, size: TimeBucketSize) -> tuple[str, str]:
    """Half-open ``[start, end)`` local-time range covered by ``time_bucket``."""
    try:
        day = date.fromisoformat(time_bucket.strip()[:10])
    except ValueError as exc:
        raise InvalidRange(f"invalid time bucket: {time_bucket}") from exc

    if size is TimeBucketSize.DAY:
        start = day
        end = date.fromordinal(day.toordinal() + 1)
    else:
        start = day.replace(day=1)
        end = date(start.year + 1, 1, 1) if start.month == 12 else date(start.year, start.month + 1, 1)
    return f"{start.isoformat()}T00:00:00", f"{end.isoformat()}T00:00:00"


def get_time_buckets(conn: sqlite3.Connection, options: TimeBucketOptions) -> list[TimeBucketItem]:
    size = _size(options)
    direction = _direction(options)
    where, args = _apply_filters_sql(options)
    rows = conn.execute(
        f"""
        SELECT {_bucket_expr(size)} AS time_bucket, COUNT(*) AS n
        FROM assets a
        LEFT JOIN duplicate_members dm ON dm.asset_id = a.id
        WHERE {where}
        GROUP BY time_bucket
        ORDER BY time_bucket {direction}
        """,
        tuple(args),
    ).fetchall()
    return [TimeBucketItem(time_bucket=str(r["time_bucket"]), count=int(r["n"])) for r in rows]


def get_time_bucket(conn: sqlite3.Connection, time_bucket: str, options: TimeBucketOptions) -> list[AssetRecord]:
    size = _size(options)
    direction = _direction(options)
    where, args = _apply_filters_sql(options)
    start, end = bucket_range(time_bucket, size)
    rows = conn.execute(
        f"""
        {ASSET_SELECT_SQL}
        WHERE {where} AND a.local_date_time >= ? AND a.local_date_time < ?
        ORDER BY a.local_date_time {direction}, a.id {direction}
        """,
        (*args, start, end),
    ).fetchall()
    return [row_to_asset(r) for r in rows]


def count_assets(conn: sqlite3.Connection, options: TimeBucketOptions) -> int:
    where, args = _apply_filters_sql(options)
    row = conn.execute(
        f"""
        SELECT COUNT(*) AS n
        FROM assets a
        LEFT JOIN duplicate_members dm ON dm.asset_id = a.id
        WHERE {where}
        """,
        tuple(args),
    ).fetchone()
    return int(row["n"])
