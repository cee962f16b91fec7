"""Tiered, time-based garbage collection.

A policy is a list of rules OR-ed together. Each rule carries a SQL predicate
for the sweep and a Python predicate over a row mapping with the same
meaning, so a rule can be checked without a database.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
import sqlite3
from typing import Any, Callable, Mapping

from imcat.assets import remove_asset
from imcat.config import AppConfig, RetentionConfig, TrashConfig
from imcat.duplicates import dissolve_undersized_groups
from imcat.util.time import days_ago, parse_iso, to_iso, utcnow

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


@dataclass(slots=True)
class RetentionRule:
    name: str
    clause: Callable[[datetime], tuple[str, list[Any]]]
    applies: Callable[[Row, datetime], bool]


@dataclass(slots=True)
class RetentionPolicy:
    name: str
    table: str
    rules: list[RetentionRule]

    def where(self, now: datetime) -> tuple[str, list[Any]]:
        parts: list[str] = []
        args: list[Any] = []
        for rule in self.rules:
            sql, rule_args = rule.clause(now)
            parts.append(f"({sql})")
            args.extend(rule_args)
        return " OR ".join(parts) or "0", args

    def matches(self, row: Row, now: datetime) -> bool:
        return any(rule.applies(row, now) for rule in self.rules)


def _older_than(value: str | None, cutoff: datetime) -> bool:
    return value is not None and parse_iso(value) < cutoff


def _cutoff(days: float, now: datetime) -> str:
    return to_iso(days_ago(days, now))


def notification_policy(cfg: RetentionConfig) -> RetentionPolicy:
    deleted = RetentionRule(
        name="deleted",
        clause=lambda now: ("deleted_at IS NOT NULL AND deleted_at < ?", [_cutoff(cfg.notification_deleted_days, now)]),
        applies=lambda row, now: _older_than(row.get("deleted_at"), days_ago(cfg.notification_deleted_days, now)),
    )
    read = RetentionRule(
        name="read",
        clause=lambda now: (
            "read_at IS NOT NULL AND read_at < ? AND created_at < ?",
            [_cutoff(cfg.notification_read_days, now), _cutoff(cfg.notification_read_created_days, now)],
        ),
        applies=lambda row, now: (
            _older_than(row.get("read_at"), days_ago(cfg.notification_read_days, now))
            and _older_than(row.get("created_at"), days_ago(cfg.notification_read_created_days, now))
        ),
    )
    unread = RetentionRule(
        name="unread",
        clause=lambda now: ("read_at IS NULL AND created_at < ?", [_cutoff(cfg.notification_unread_days, now)]),
        applies=lambda row, now: (
            row.get("read_at") is None
            and _older_than(row.get("created_at"), days_ago(cfg.notification_unread_days, now))
        ),
    )
    return RetentionPolicy(name="notifications", table="notifications", rules=[deleted, read, unread])


def trash_policy(cfg: TrashConfig) -> RetentionPolicy:
    expired = RetentionRule(
        name="trash",
        clause=lambda now: ("deleted_at IS NOT NULL AND deleted_at < ?", [_cutoff(cfg.days, now)]),
        applies=lambda row, now: _older_than(row.get("deleted_at"), days_ago(cfg.days, now)),
    )
    return RetentionPolicy(name="trash", table="assets", rules=[expired])


def audit_policy(days: float) -> RetentionPolicy:
    expired = RetentionRule(
        name="audit",
        clause=lambda now: ("deleted_at < ?", [_cutoff(days, now)]),
        applies=lambda row, now: _older_than(row.get("deleted_at"), days_ago(days, now)),
    )
    return RetentionPolicy(name="audit", table="asset_audit", rules=[expired])


def purge(conn: sqlite3.Connection, policy: RetentionPolicy, now: datetime | None = None) -> int:
    where, args = policy.where(now or utcnow())
    cur = conn.execute(f"DELETE FROM {policy.table} WHERE {where}", tuple(args))
    count = int(cur.rowcount)
    if count:
        logger.info("retention %s: purged %d rows", policy.name, count)
    return count


def sweep_trash(conn: sqlite3.Connection, cfg: TrashConfig, now: datetime | None = None) -> int:
    """Hard delete expired trash through :func:`remove_asset` so audit rows and motion halves follow."""
    if not cfg.enabled:
        return 0
    policy = trash_policy(cfg)
    where, args = policy.where(now or utcnow())
    rows = conn.execute(f"SELECT id FROM assets WHERE {where} ORDER BY deleted_at, id", tuple(args)).fetchall()

    removed: list[str] = []
    for row in rows:
        removed.extend(remove_asset(conn, str(row["id"])))
    if removed:
        dissolve_undersized_groups(conn)
        logger.info("retention trash: removed %d assets", len(removed))
    return len(removed)


def run_cleanup(conn: sqlite3.Connection, cfg: AppConfig, now: datetime | None = None) -> dict[str, int]:
    moment = now or utcnow()
    return {
        "notifications": purge(conn, notification_policy(cfg.retention), moment),
        "trash": sweep_trash(conn, cfg.trash, moment),
        "audit": purge(conn, audit_policy(cfg.sync.audit_retention_days), moment),
    }
