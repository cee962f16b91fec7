from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
import sqlite3
from typing import Callable

import pytest

from imcat.assets import get_by_id
from imcat.config import AppConfig, RetentionConfig, TrashConfig
from imcat.indexer import ingest_asset
from imcat.models import AssetCreate, NotificationCreate
from imcat.notifications import cleanup, create
from imcat.retention import audit_policy, notification_policy, purge, run_cleanup, sweep_trash
from imcat.util.time import to_iso

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _ago(days: float) -> str:
    return to_iso(NOW - timedelta(days=days))


def _notification(conn: sqlite3.Connection, created_days: float, read_days: float | None = None) -> str:
    record = create(
        conn,
        NotificationCreate(
            user_id="u1",
            title=f"created {created_days}d ago",
            created_at=_ago(created_days),
            read_at=_ago(read_days) if read_days is not None else None,
        ),
    )
    return record.id


def _soft_delete(conn: sqlite3.Connection, notification_id: str, days: float) -> None:
    conn.execute("UPDATE notifications SET deleted_at = ? WHERE id = ?", (_ago(days), notification_id))


def _remaining(conn: sqlite3.Connection) -> set[str]:
    return {str(r["id"]) for r in conn.execute("SELECT id FROM notifications").fetchall()}


def test_notification_tiers(conn: sqlite3.Connection) -> None:
    old_unread = _notification(conn, created_days=31)
    recent_unread = _notification(conn, created_days=29)
    read_recently = _notification(conn, created_days=20, read_days=1)
    read_long_ago = _notification(conn, created_days=20, read_days=3)
    read_but_young = _notification(conn, created_days=10, read_days=5)
    deleted_old = _notification(conn, created_days=5)
    _soft_delete(conn, deleted_old, days=4)
    deleted_recent = _notification(conn, created_days=5)
    _soft_delete(conn, deleted_recent, days=1)

    purged = cleanup(conn, RetentionConfig(), now=NOW)

    assert purged == 3
    assert _remaining(conn) == {recent_unread, read_recently, read_but_young, deleted_recent}
    assert old_unread not in _remaining(conn) and read_long_ago not in _remaining(conn)


def test_sql_and_python_predicates_agree(conn: sqlite3.Connection) -> None:
    for created, read in [(31, None), (29, None), (20, 1), (20, 3), (16, 2.5), (10, 5), (40, 39)]:
        _notification(conn, created_days=created, read_days=read)
    deleted = _notification(conn, created_days=5)
    _soft_delete(conn, deleted, days=4)

    policy = notification_policy(RetentionConfig())
    where, args = policy.where(NOW)
    in_sql = {str(r["id"]) for r in conn.execute(f"SELECT id FROM notifications WHERE {where}", tuple(args)).fetchall()}
    rows = conn.execute("SELECT * FROM notifications").fetchall()
    in_python = {str(r["id"]) for r in rows if policy.matches(dict(r), NOW)}

    assert in_sql == in_python
    assert len(in_sql) == 5


def test_cleanup_is_idempotent(conn: sqlite3.Connection) -> None:
    _notification(conn, created_days=31)
    assert cleanup(conn, now=NOW) == 1
    assert cleanup(conn, now=NOW) == 0


def test_trash_sweep_hard_deletes_expired_assets(
    conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]
) -> None:
    still = ingest_asset(conn, make_asset("IMG_1.HEIC", live_photo_cid="c1")).result.id
    motion = ingest_asset(conn, make_asset("IMG_1.MOV", type="VIDEO", live_photo_cid="c1")).result.id
    recent = ingest_asset(conn, make_asset("recent.jpg")).result.id
    conn.execute("UPDATE assets SET deleted_at = ? WHERE id = ?", (_ago(31), still))
    conn.execute("UPDATE assets SET deleted_at = ? WHERE id = ?", (_ago(10), recent))

    removed = sweep_trash(conn, TrashConfig(days=30), now=NOW)

    assert removed == 2
    assert get_by_id(conn, still) is None and get_by_id(conn, motion) is None
    assert get_by_id(conn, recent) is not None
    audited = {str(r["asset_id"]) for r in conn.execute("SELECT asset_id FROM asset_audit").fetchall()}
    assert audited == {still, motion}
    assert sweep_trash(conn, TrashConfig(days=30), now=NOW) == 0


def test_trash_sweep_can_be_disabled(conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]) -> None:
    asset = ingest_asset(conn, make_asset("a.jpg")).result.id
    conn.execute("UPDATE assets SET deleted_at = ? WHERE id = ?", (_ago(90), asset))
    assert sweep_trash(conn, TrashConfig(enabled=False), now=NOW) == 0


def test_audit_rows_expire(conn: sqlite3.Connection) -> None:
    conn.executemany(
        "INSERT INTO asset_audit(asset_id, owner_id, deleted_at) VALUES(?, 'u1', ?)",
        [("old", _ago(101)), ("new", _ago(99))],
    )
    assert purge(conn, audit_policy(100), now=NOW) == 1
    left = [str(r["asset_id"]) for r in conn.execute("SELECT asset_id FROM asset_audit").fetchall()]
    assert left == ["new"]


@pytest.mark.parametrize("days,expected", [(3, 0), (2, 1)])
def test_notification_tiers_follow_config(conn: sqlite3.Connection, days: float, expected: int) -> None:
    nid = _notification(conn, created_days=5)
    _soft_delete(conn, nid, days=2.5)
    cfg = RetentionConfig(notification_deleted_days=days)
    assert cleanup(conn, cfg, now=NOW) == expected


def test_run_cleanup_reports_every_policy(conn: sqlite3.Connection, tmp_path: Path) -> None:
    _notification(conn, created_days=45)
    stats = run_cleanup(conn, AppConfig(db_path=tmp_path / "unused.sqlite3"), now=NOW)
    assert stats == {"notifications": 1, "trash": 0, "audit": 0}
