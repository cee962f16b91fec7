from __future__ import annotations

from datetime import datetime, timezone
import sqlite3
from typing import Callable

import pytest

from imcat.assets import remove_asset, soft_delete_all
from imcat.errors import InvalidRange
from imcat.identity import resolve_upload
from imcat.models import AssetCreate
from imcat.sync import (
    DeltaSyncOptions,
    FullSyncOptions,
    delta_sync,
    get_all_for_user_full_sync,
    get_changed_delta_sync,
    needs_full_sync,
)
from imcat.util.time import now_iso

EPOCH = "2000-01-01T00:00:00.000000Z"


def _seed(
    conn: sqlite3.Connection,
    make_asset: Callable[..., AssetCreate],
    n: int,
    owner_id: str = "u1",
    prefix: str = "a",
) -> list[str]:
    return [resolve_upload(conn, make_asset(f"{prefix}-{i}.jpg", owner_id=owner_id)).id for i in range(n)]


def _clock(monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setattr("imcat.assets.now_iso", lambda: value)


def test_full_sync_pages_deliver_each_asset_once(
    conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]
) -> None:
    ids = _seed(conn, make_asset, 7)
    _seed(conn, make_asset, 2, owner_id="u2")
    ceiling = now_iso()

    seen: list[str] = []
    last_id = None
    while True:
        page = get_all_for_user_full_sync(conn, FullSyncOptions(owner_id="u1", updated_until=ceiling, limit=3, last_id=last_id))
        seen.extend(a.id for a in page)
        if len(page) < 3:
            break
        last_id = page[-1].id

    assert seen == sorted(ids)


def test_full_sync_respects_ceiling_and_includes_trash(
    conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate], monkeypatch: pytest.MonkeyPatch
) -> None:
    _clock(monkeypatch, "2024-01-01T00:00:00.000000Z")
    early = _seed(conn, make_asset, 2)
    soft_delete_all(conn, [early[0]])
    _clock(monkeypatch, "2024-02-01T00:00:00.000000Z")
    resolve_upload(conn, make_asset("late.jpg"))

    page = get_all_for_user_full_sync(
        conn, FullSyncOptions(owner_id="u1", updated_until="2024-01-15T00:00:00Z", limit=10)
    )
    assert sorted(a.id for a in page) == sorted(early)
    assert any(a.is_trashed for a in page)


def test_delta_sync_extends_page_across_equal_timestamps(
    conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate], monkeypatch: pytest.MonkeyPatch
) -> None:
    _clock(monkeypatch, "2024-03-01T00:00:00.000000Z")
    first = _seed(conn, make_asset, 1)
    _clock(monkeypatch, "2024-03-02T00:00:00.000000Z")
    tied = _seed(conn, make_asset, 3, prefix="tied")

    page = get_changed_delta_sync(conn, DeltaSyncOptions(user_ids=["u1"], updated_after=EPOCH, limit=2))
    assert [a.id for a in page] == [*first, *sorted(tied)]

    watermark = page[-1].updated_at
    rest = get_changed_delta_sync(conn, DeltaSyncOptions(user_ids=["u1"], updated_after=watermark, limit=2))
    assert rest == []


def test_delta_sync_keyset_pages_are_exact(
    conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate], monkeypatch: pytest.MonkeyPatch
) -> None:
    _clock(monkeypatch, "2024-03-02T00:00:00.000000Z")
    ids = _seed(conn, make_asset, 5)
    now = datetime(2024, 3, 10, tzinfo=timezone.utc)

    seen: list[str] = []
    options = DeltaSyncOptions(user_ids=["u1"], updated_after="2024-03-01T00:00:00Z", limit=2, after_id="")
    while True:
        page = delta_sync(conn, options, audit_retention_days=100, now=now)
        assert len(page.upserted) <= 2
        seen.extend(a.id for a in page.upserted)
        if not page.has_more:
            break
        options = DeltaSyncOptions(user_ids=["u1"], updated_after=str(page.watermark), limit=2, after_id=page.last_id)

    assert seen == sorted(ids)


def test_delta_sync_union_covers_every_change(
    conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate], monkeypatch: pytest.MonkeyPatch
) -> None:
    _clock(monkeypatch, "2024-03-01T00:00:00.000000Z")
    kept, trashed, removed = _seed(conn, make_asset, 3)
    other_user = _seed(conn, make_asset, 1, owner_id="u2")
    now = datetime(2024, 3, 10, tzinfo=timezone.utc)
    watermark = "2024-03-05T00:00:00.000000Z"

    _clock(monkeypatch, "2024-03-06T00:00:00.000000Z")
    soft_delete_all(conn, [trashed])
    remove_asset(conn, removed)

    page = delta_sync(
        conn, DeltaSyncOptions(user_ids=["u1", "u2"], updated_after=watermark, limit=100), audit_retention_days=100, now=now
    )
    assert page.needs_full_sync is False
    assert [a.id for a in page.upserted] == [trashed]
    assert page.deleted == [removed]
    assert kept not in page.deleted and other_user[0] not in page.deleted
    assert page.watermark == "2024-03-06T00:00:00.000000Z"


def test_stale_watermark_requires_full_sync(conn: sqlite3.Connection) -> None:
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    page = delta_sync(
        conn,
        DeltaSyncOptions(user_ids=["u1"], updated_after="2024-01-01T00:00:00Z", limit=10),
        audit_retention_days=100,
        now=now,
    )
    assert page.needs_full_sync is True
    assert page.upserted == [] and page.deleted == []
    assert needs_full_sync("2024-05-01T00:00:00Z", 100, now=now) is False


def test_future_watermark_is_empty(conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]) -> None:
    _seed(conn, make_asset, 2)
    page = get_changed_delta_sync(conn, DeltaSyncOptions(user_ids=["u1"], updated_after="2999-01-01T00:00:00Z", limit=5))
    assert page == []


@pytest.mark.parametrize(
    "options",
    [
        DeltaSyncOptions(user_ids=["u1"], updated_after=EPOCH, limit=0),
        DeltaSyncOptions(user_ids=[], updated_after=EPOCH, limit=5),
        DeltaSyncOptions(user_ids=["u1"], updated_after="yesterday", limit=5),
    ],
)
def test_invalid_delta_options_raise(conn: sqlite3.Connection, options: DeltaSyncOptions) -> None:
    with pytest.raises(InvalidRange):
        get_changed_delta_sync(conn, options)


def test_invalid_full_sync_limit_raises(conn: sqlite3.Connection) -> None:
    with pytest.raises(InvalidRange):
        get_all_for_user_full_sync(conn, FullSyncOptions(owner_id="u1", updated_until=EPOCH, limit=-1))
