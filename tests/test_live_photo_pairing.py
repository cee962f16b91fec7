from __future__ import annotations

import sqlite3
from typing import Callable

import pytest

from imcat.assets import get_by_id, get_live_photo_count, remove_asset, soft_delete_all
from imcat.buckets import TimeBucketOptions, count_assets
from imcat.errors import InvalidRange
from imcat.indexer import ingest_asset
from imcat.models import AssetCreate, AssetType
from imcat.pairing import find_live_photo_match, link_live_photo, unlink_live_photo


def _still(make_asset: Callable[..., AssetCreate], name: str = "IMG_1.HEIC", **kw: object) -> AssetCreate:
    return make_asset(name, type="IMAGE", live_photo_cid="cid-1", **kw)


def _motion(make_asset: Callable[..., AssetCreate], name: str = "IMG_1.MOV", **kw: object) -> AssetCreate:
    return make_asset(name, type="VIDEO", live_photo_cid="cid-1", **kw)


def _assert_linked(conn: sqlite3.Connection, still_id: str, motion_id: str) -> None:
    still = get_by_id(conn, still_id)
    motion = get_by_id(conn, motion_id)
    assert still is not None and motion is not None
    assert still.live_photo_video_id == motion_id
    assert still.is_visible is True
    assert motion.is_visible is False


def test_pairs_when_motion_arrives_second(conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]) -> None:
    still = ingest_asset(conn, _still(make_asset))
    motion = ingest_asset(conn, _motion(make_asset))

    assert still.paired_with is None
    assert motion.paired_with == still.result.id
    _assert_linked(conn, still.result.id, motion.result.id)


def test_pairs_when_still_arrives_second(conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]) -> None:
    motion = ingest_asset(conn, _motion(make_asset))
    still = ingest_asset(conn, _still(make_asset))

    assert motion.paired_with is None
    assert still.paired_with == motion.result.id
    _assert_linked(conn, still.result.id, motion.result.id)


def test_no_sibling_is_none(conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]) -> None:
    still = ingest_asset(conn, _still(make_asset))
    match = find_live_photo_match(conn, "u1", "cid-1", still.result.id, AssetType.VIDEO)
    assert match is None


def test_match_is_scoped_to_owner_and_untrashed(
    conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]
) -> None:
    foreign = ingest_asset(conn, _motion(make_asset, owner_id="u2"))
    still = ingest_asset(conn, _still(make_asset))
    assert still.paired_with is None
    assert get_by_id(conn, foreign.result.id).is_visible is True  # type: ignore[union-attr]

    motion = ingest_asset(conn, _motion(make_asset))
    soft_delete_all(conn, [motion.result.id])
    assert find_live_photo_match(conn, "u1", "cid-1", still.result.id, "VIDEO") is None


def test_linked_motion_is_hidden_from_buckets(
    conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]
) -> None:
    ingest_asset(conn, _still(make_asset))
    ingest_asset(conn, _motion(make_asset))
    assert count_assets(conn, TimeBucketOptions(user_ids=["u1"])) == 1


def test_removing_still_cascades_orphaned_motion(
    conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]
) -> None:
    still = ingest_asset(conn, _still(make_asset))
    motion = ingest_asset(conn, _motion(make_asset))

    removed = remove_asset(conn, still.result.id)

    assert set(removed) == {still.result.id, motion.result.id}
    audited = conn.execute("SELECT asset_id FROM asset_audit ORDER BY asset_id").fetchall()
    assert {r["asset_id"] for r in audited} == set(removed)


def test_shared_motion_survives_while_referenced(
    conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]
) -> None:
    first = ingest_asset(conn, _still(make_asset))
    motion = ingest_asset(conn, _motion(make_asset))
    second = ingest_asset(conn, make_asset("IMG_1 (edited).HEIC", type="IMAGE"))
    link_live_photo(conn, second.result.id, motion.result.id)
    assert get_live_photo_count(conn, motion.result.id) == 2

    removed = remove_asset(conn, first.result.id)

    assert removed == [first.result.id]
    assert get_by_id(conn, motion.result.id) is not None
    assert get_live_photo_count(conn, motion.result.id) == 1


def test_unlink_shows_motion_again(conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]) -> None:
    still = ingest_asset(conn, _still(make_asset))
    motion = ingest_asset(conn, _motion(make_asset))

    assert unlink_live_photo(conn, still.result.id) == motion.result.id
    assert get_by_id(conn, motion.result.id).is_visible is True  # type: ignore[union-attr]


def test_link_rejects_wrong_types(conn: sqlite3.Connection, make_asset: Callable[..., AssetCreate]) -> None:
    a = ingest_asset(conn, make_asset("a.jpg"))
    b = ingest_asset(conn, make_asset("b.jpg"))
    with pytest.raises(InvalidRange):
        link_live_photo(conn, a.result.id, b.result.id)
