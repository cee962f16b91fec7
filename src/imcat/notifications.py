from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any, Iterable

from imcat.config import RetentionConfig
from imcat.db import placeholders
from imcat.errors import InvalidRange, NotFound
from imcat.ids import new_id
from imcat.models import NotificationCreate, NotificationRecord, NotificationSearch
from imcat.retention import notification_policy, purge
from imcat.util.time import normalize_timestamp, now_iso

LEVELS = {"success", "error", "warning", "info"}
TYPES = {"JobFailed", "BackupFailed", "SystemMessage", "Custom"}

NOTIFICATION_COLUMNS = "id, user_id, level, type, title, description, data, created_at, updated_at, read_at, deleted_at"

UPDATABLE_FIELDS = {"level", "type", "title", "description", "data", "read_at"}


def _row_to_notification(row: sqlite3.Row) -> NotificationRecord:
    data = row["data"]
    return NotificationRecord(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        level=str(row["level"]),
        type=str(row["type"]),
        title=str(row["title"]),
        description=row["description"],
        data=json.loads(data) if data else None,
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
        read_at=row["read_at"],
        deleted_at=row["deleted_at"],
    )


def _check(level: str | None, type: str | None) -> None:
    if level is not None and level not in LEVELS:
        raise InvalidRange(f"unsupported notification level: {level}")
    if type is not None and type not in TYPES:
        raise InvalidRange(f"unsupported notification type: {type}")


def _column_value(name: str, value: Any) -> Any:
    if name == "data":
        return json.dumps(value, ensure_ascii=False) if value is not None else None
    if name == "read_at" and value is not None:
        return normalize_timestamp(value)
    return value


def search(conn: sqlite3.Connection, user_id: str, dto: NotificationSearch) -> list[NotificationRecord]:
    clauses = ["user_id = ?", "deleted_at IS NULL"]
    args: list[Any] = [user_id]
    if dto.id is not None:
        clauses.append("id = ?")
        args.append(dto.id)
    if dto.level is not None:
        clauses.append("level = ?")
        args.append(dto.level)
    if dto.type is not None:
        clauses.append("type = ?")
        args.append(dto.type)
    if dto.unread:
        clauses.append("read_at IS NULL")

    rows = conn.execute(
        f"""
        SELECT {NOTIFICATION_COLUMNS}
        FROM notifications
        WHERE {' AND '.join(clauses)}
        ORDER BY created_at DESC, id DESC
        """,
        tuple(args),
    ).fetchall()
    return [_row_to_notification(r) for r in rows]


def create(conn: sqlite3.Connection, notification: NotificationCreate) -> NotificationRecord:
    _check(notification.level, notification.type)
    nid = new_id()
    now = now_iso()
    created_at = normalize_timestamp(notification.created_at) if notification.created_at else now
    conn.execute(
        f"""
        INSERT INTO notifications({NOTIFICATION_COLUMNS})
        VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL)
        """,
        (
            nid,
            notification.user_id,
            notification.level,
            notification.type,
            notification.title,
            notification.description,
            _column_value("data", notification.data),
            created_at,
            now,
            _column_value("read_at", notification.read_at),
        ),
    )
    row = conn.execute(f"SELECT {NOTIFICATION_COLUMNS} FROM notifications WHERE id = ?", (nid,)).fetchone()
    return _row_to_notification(row)


def get(conn: sqlite3.Connection, notification_id: str) -> NotificationRecord | None:
    row = conn.execute(
        f"SELECT {NOTIFICATION_COLUMNS} FROM notifications WHERE id = ? AND deleted_at IS NULL",
        (notification_id,),
    ).fetchone()
    return _row_to_notification(row) if row else None


def _assignments(fields: dict[str, Any]) -> tuple[str, list[Any]]:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise InvalidRange(f"fields cannot be updated: {', '.join(sorted(unknown))}")
    _check(fields.get("level"), fields.get("type"))
    cols = [f"{name} = ?" for name in fields]
    args = [_column_value(name, value) for name, value in fields.items()]
    cols.append("updated_at = ?")
    args.append(now_iso())
    return ", ".join(cols), args


def update(conn: sqlite3.Connection, notification_id: str, **fields: Any) -> NotificationRecord:
    assignments, args = _assignments(fields)
    cur = conn.execute(
        f"UPDATE notifications SET {assignments} WHERE id = ? AND deleted_at IS NULL",
        (*args, notification_id),
    )
    if cur.rowcount == 0:
        raise NotFound(f"notification not found: {notification_id}")
    updated = get(conn, notification_id)
    assert updated is not None
    return updated


def update_all(conn: sqlite3.Connection, notification_ids: Iterable[str], **fields: Any) -> int:
    ids = list(dict.fromkeys(notification_ids))
    if not ids:
        return 0
    assignments, args = _assignments(fields)
    cur = conn.execute(
        f"UPDATE notifications SET {assignments} WHERE id IN ({placeholders(ids)})",
        (*args, *ids),
    )
    return int(cur.rowcount)


def delete(conn: sqlite3.Connection, notification_id: str) -> None:
    delete_all(conn, [notification_id])


def delete_all(conn: sqlite3.Connection, notification_ids: Iterable[str]) -> int:
    ids = list(dict.fromkeys(notification_ids))
    if not ids:
        return 0
    now = now_iso()
    cur = conn.execute(
        f"UPDATE notifications SET deleted_at = ?, updated_at = ? WHERE deleted_at IS NULL AND id IN ({placeholders(ids)})",
        (now, now, *ids),
    )
    return int(cur.rowcount)


def cleanup(conn: sqlite3.Connection, cfg: RetentionConfig | None = None, now: datetime | None = None) -> int:
    return purge(conn, notification_policy(cfg or RetentionConfig()), now)
