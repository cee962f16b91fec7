from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

from imcat import assets as assets_mod
from imcat import notifications as notifications_mod
from imcat.buckets import TimeBucketOptions, count_assets, get_time_bucket, get_time_buckets
from imcat.config import AppConfig
from imcat.db import Database
from imcat.duplicates import (
    DuplicateUpdate,
    detect_duplicates,
    get_duplicates,
    resolve_duplicates,
    trash_assets,
    update_duplicates,
)
from imcat.errors import InvalidRange, NotFound
from imcat.ids import parse_checksum
from imcat.indexer import import_folder, ingest_asset, upload_file
from imcat.models import AssetCreate, AssetType, NotificationCreate, NotificationSearch
from imcat.output_models import (
    AssetOutput,
    DeltaSyncOutput,
    DuplicateGroupOutput,
    FullSyncOutput,
    NotificationOutput,
    TimeBucketOutput,
    UploadOutput,
)
from imcat.pairing import find_live_photo_match, link_live_photo
from imcat.retention import run_cleanup
from imcat.sync import DeltaSyncOptions, FullSyncOptions, delta_sync, get_all_for_user_full_sync, sync_timestamp
from imcat.util.time import now_iso


class CatalogService:
    def __init__(self, config: AppConfig):
        self.config = config
        self.db = Database(config.db_path, timeout=config.busy_timeout)
        self.db.initialize()

    def _bucket_options(self, **kwargs: Any) -> TimeBucketOptions:
        opts = TimeBucketOptions(size=self.config.buckets.size, order=self.config.buckets.order)
        for name, value in kwargs.items():
            if value is not None:
                setattr(opts, name, value)
        if not opts.user_ids and opts.album_id is None:
            opts.user_ids = [self.config.ingest.owner_id]
        return opts

    def import_folder(self, root: Path) -> dict[str, Any]:
        if not root.is_dir():
            raise InvalidRange(f"not a directory: {root}")
        with self.db.connect() as conn:
            stats = import_folder(conn, root, self.config.ingest, self.config.duplicates.max_distance)
        return {
            "scanned": stats.scanned,
            "created": stats.created,
            "duplicates": stats.duplicates,
            "existing": stats.existing,
            "paired": stats.paired,
            "grouped": stats.grouped,
        }

    def upload(self, path: Path, live_photo_cid: str | None = None) -> dict[str, Any]:
        if not path.is_file():
            raise InvalidRange(f"not a file: {path}")
        with self.db.connect() as conn:
            outcome = upload_file(
                conn,
                path,
                self.config.ingest,
                self.config.duplicates.max_distance,
                live_photo_cid=live_photo_cid,
            )
        return UploadOutput(
            id=outcome.result.id,
            status=outcome.result.status.value,
            is_trashed=outcome.result.is_trashed,
            paired_with=outcome.paired_with,
            duplicate_id=outcome.duplicate_id,
        ).model_dump(mode="json")

    def create_asset(self, asset: AssetCreate) -> dict[str, Any]:
        """Ingest an asset described by a client rather than read from disk."""
        try:
            checksum = parse_checksum(asset.checksum)
        except ValueError as exc:
            raise InvalidRange(str(exc)) from exc
        with self.db.connect() as conn:
            outcome = ingest_asset(conn, replace(asset, checksum=checksum), self.config.duplicates.max_distance)
        return UploadOutput(
            id=outcome.result.id,
            status=outcome.result.status.value,
            is_trashed=outcome.result.is_trashed,
            paired_with=outcome.paired_with,
            duplicate_id=outcome.duplicate_id,
        ).model_dump(mode="json")

    def get_asset(self, asset_id: str) -> dict[str, Any] | None:
        with self.db.connect() as conn:
            asset = assets_mod.get_by_id(conn, asset_id)
        return AssetOutput.from_record(asset).model_dump(mode="json") if asset else None

    def time_buckets(self, **filters: Any) -> list[dict[str, Any]]:
        opts = self._bucket_options(**filters)
        with self.db.connect() as conn:
            items = get_time_buckets(conn, opts)
        return [TimeBucketOutput(time_bucket=i.time_bucket, count=i.count).model_dump(mode="json") for i in items]

    def time_bucket(self, time_bucket: str, **filters: Any) -> list[dict[str, Any]]:
        opts = self._bucket_options(**filters)
        with self.db.connect() as conn:
            rows = get_time_bucket(conn, time_bucket, opts)
        return [AssetOutput.from_record(a).model_dump(mode="json") for a in rows]

    def count(self, **filters: Any) -> int:
        opts = self._bucket_options(**filters)
        with self.db.connect() as conn:
            return count_assets(conn, opts)

    def full_sync(
        self,
        owner_id: str,
        updated_until: str | datetime | None = None,
        last_id: str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        page_limit = limit or self.config.sync.page_limit
        ceiling = sync_timestamp(updated_until or now_iso(), "updated_until")
        options = FullSyncOptions(
            owner_id=owner_id,
            updated_until=ceiling,
            limit=page_limit,
            last_id=last_id,
        )
        with self.db.connect() as conn:
            rows = get_all_for_user_full_sync(conn, options)
        return FullSyncOutput(
            assets=[AssetOutput.from_record(a) for a in rows],
            last_id=rows[-1].id if rows else last_id,
            complete=len(rows) < page_limit,
            updated_until=ceiling,
        ).model_dump(mode="json")

    def delta_sync(
        self,
        user_ids: list[str],
        updated_after: str | datetime,
        limit: int | None = None,
        after_id: str | None = None,
    ) -> dict[str, Any]:
        options = DeltaSyncOptions(
            user_ids=user_ids,
            updated_after=updated_after,
            limit=limit or self.config.sync.page_limit,
            after_id=after_id,
        )
        with self.db.connect() as conn:
            page = delta_sync(conn, options, self.config.sync.audit_retention_days)
        return DeltaSyncOutput(
            upserted=[AssetOutput.from_record(a) for a in page.upserted],
            deleted=page.deleted,
            needs_full_sync=page.needs_full_sync,
            has_more=page.has_more,
            watermark=page.watermark,
            last_id=page.last_id,
        ).model_dump(mode="json")

    def duplicates(self, owner_id: str | None = None) -> list[dict[str, Any]]:
        with self.db.connect() as conn:
            groups = get_duplicates(conn, owner_id or self.config.ingest.owner_id)
        return [
            DuplicateGroupOutput(
                duplicate_id=g.duplicate_id,
                assets=[AssetOutput.from_record(a) for a in g.assets],
            ).model_dump(mode="json")
            for g in groups
        ]

    def detect_duplicates(self, owner_id: str | None = None, max_distance: int | None = None) -> dict[str, int]:
        distance = self.config.duplicates.max_distance if max_distance is None else max_distance
        with self.db.connect() as conn:
            return detect_duplicates(conn, owner_id or self.config.ingest.owner_id, distance)

    def regroup(
        self,
        target_duplicate_id: str | None,
        asset_ids: list[str],
        duplicate_ids: list[str] | None = None,
        exclude_asset_ids: list[str] | None = None,
    ) -> None:
        update = DuplicateUpdate(
            target_duplicate_id=target_duplicate_id,
            asset_ids=asset_ids,
            duplicate_ids=duplicate_ids or [],
            exclude_asset_ids=exclude_asset_ids or [],
        )
        with self.db.connect() as conn:
            update_duplicates(conn, update)

    def resolve_duplicates(self, duplicate_id: str, keep_ids: list[str], trash_ids: list[str]) -> dict[str, Any]:
        with self.db.connect() as conn:
            return resolve_duplicates(conn, duplicate_id, keep_ids, trash_ids)

    def live_match(self, asset_id: str) -> dict[str, Any] | None:
        with self.db.connect() as conn:
            asset = assets_mod.get_by_id(conn, asset_id)
            if asset is None:
                raise NotFound(f"asset not found: {asset_id}")
            if not asset.live_photo_cid:
                return None
            other = AssetType.VIDEO if asset.type == AssetType.IMAGE.value else AssetType.IMAGE
            match = find_live_photo_match(conn, asset.owner_id, asset.live_photo_cid, asset.id, other, asset.library_id)
        return AssetOutput.from_record(match).model_dump(mode="json") if match else None

    def live_link(self, still_id: str, motion_id: str) -> None:
        with self.db.connect() as conn:
            link_live_photo(conn, still_id, motion_id)

    def trash(self, asset_ids: list[str]) -> int:
        with self.db.connect() as conn:
            return trash_assets(conn, asset_ids)

    def restore(self, asset_ids: list[str]) -> int:
        with self.db.connect() as conn:
            return assets_mod.restore_all(conn, asset_ids)

    def update_assets(self, asset_ids: list[str], **fields: Any) -> int:
        with self.db.connect() as conn:
            return assets_mod.update_all(conn, asset_ids, **fields)

    def statistics(
        self,
        owner_id: str | None = None,
        is_favorite: bool | None = None,
        is_archived: bool | None = None,
        is_trashed: bool | None = None,
    ) -> dict[str, int]:
        with self.db.connect() as conn:
            return assets_mod.get_statistics(
                conn,
                owner_id or self.config.ingest.owner_id,
                is_favorite=is_favorite,
                is_archived=is_archived,
                is_trashed=is_trashed,
            )

    def notify(self, notification: NotificationCreate) -> dict[str, Any]:
        with self.db.connect() as conn:
            record = notifications_mod.create(conn, notification)
        return NotificationOutput.from_record(record).model_dump(mode="json")

    def notifications(self, user_id: str, search: NotificationSearch | None = None) -> list[dict[str, Any]]:
        with self.db.connect() as conn:
            rows = notifications_mod.search(conn, user_id, search or NotificationSearch())
        return [NotificationOutput.from_record(r).model_dump(mode="json") for r in rows]

    def mark_read(self, notification_ids: list[str]) -> int:
        with self.db.connect() as conn:
            return notifications_mod.update_all(conn, notification_ids, read_at=now_iso())

    def remove_notifications(self, notification_ids: list[str]) -> int:
        with self.db.connect() as conn:
            return notifications_mod.delete_all(conn, notification_ids)

    def cleanup(self, now: datetime | None = None) -> dict[str, int]:
        with self.db.connect() as conn:
            return run_cleanup(conn, self.config, now)

    def status(self) -> dict[str, Any]:
        with self.db.connect() as conn:
            counts = {
                "assets": int(conn.execute("SELECT COUNT(*) AS n FROM assets").fetchone()["n"]),
                "assets_trashed": int(
                    conn.execute("SELECT COUNT(*) AS n FROM assets WHERE deleted_at IS NOT NULL").fetchone()["n"]
                ),
                "assets_hidden": int(conn.execute("SELECT COUNT(*) AS n FROM assets WHERE is_visible = 0").fetchone()["n"]),
                "duplicate_groups": int(conn.execute("SELECT COUNT(*) AS n FROM duplicate_groups").fetchone()["n"]),
                "audit_rows": int(conn.execute("SELECT COUNT(*) AS n FROM asset_audit").fetchone()["n"]),
                "notifications": int(
                    conn.execute("SELECT COUNT(*) AS n FROM notifications WHERE deleted_at IS NULL").fetchone()["n"]
                ),
            }
        counts["db_path"] = str(self.db.path)
        return counts
