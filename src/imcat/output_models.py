from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from imcat.ids import checksum_hex
from imcat.models import AssetRecord, NotificationRecord


class AssetOutput(BaseModel):
    id: str
    owner_id: str
    library_id: str | None = None
    device_id: str
    device_asset_id: str
    type: str
    checksum: str
    original_path: str
    original_file_name: str
    file_created_at: str
    file_modified_at: str
    local_date_time: str
    created_at: str
    updated_at: str
    deleted_at: str | None = None
    is_favorite: bool = False
    is_archived: bool = False
    is_offline: bool = False
    is_visible: bool = True
    is_trashed: bool = False
    duplicate_id: str | None = None
    stack_id: str | None = None
    live_photo_cid: str | None = None
    live_photo_video_id: str | None = None
    width: int | None = None
    height: int | None = None

    @classmethod
    def from_record(cls, asset: AssetRecord) -> AssetOutput:
        return cls(
            id=asset.id,
            owner_id=asset.owner_id,
            library_id=asset.library_id,
            device_id=asset.device_id,
            device_asset_id=asset.device_asset_id,
            type=asset.type,
            checksum=checksum_hex(asset.checksum),
            original_path=asset.original_path,
            original_file_name=asset.original_file_name,
            file_created_at=asset.file_created_at,
            file_modified_at=asset.file_modified_at,
            local_date_time=asset.local_date_time,
            created_at=asset.created_at,
            updated_at=asset.updated_at,
            deleted_at=asset.deleted_at,
            is_favorite=asset.is_favorite,
            is_archived=asset.is_archived,
            is_offline=asset.is_offline,
            is_visible=asset.is_visible,
            is_trashed=asset.is_trashed,
            duplicate_id=asset.duplicate_id,
            stack_id=asset.stack_id,
            live_photo_cid=asset.live_photo_cid,
            live_photo_video_id=asset.live_photo_video_id,
            width=asset.width,
            height=asset.height,
        )


class UploadOutput(BaseModel):
    id: str
    status: str
    is_trashed: bool = False
    paired_with: str | None = None
    duplicate_id: str | None = None


class TimeBucketOutput(BaseModel):
    time_bucket: str
    count: int


class DuplicateGroupOutput(BaseModel):
    duplicate_id: str
    assets: list[AssetOutput] = []


class FullSyncOutput(BaseModel):
    assets: list[AssetOutput] = []
    last_id: str | None = None
    complete: bool = False
    # Ceiling to send back on the next page and to start delta sync from.
    updated_until: str


class DeltaSyncOutput(BaseModel):
    upserted: list[AssetOutput] = []
    deleted: list[str] = []
    needs_full_sync: bool = False
    has_more: bool = False
    watermark: str | None = None
    last_id: str | None = None


class NotificationOutput(BaseModel):
    id: str
    user_id: str
    level: str
    type: str
    title: str
    description: str | None = None
    data: dict[str, Any] | None = None
    created_at: str
    updated_at: str
    read_at: str | None = None

    @classmethod
    def from_record(cls, record: NotificationRecord) -> NotificationOutput:
        return cls(
            id=record.id,
            user_id=record.user_id,
            level=record.level,
            type=record.type,
            title=record.title,
            description=record.description,
            data=record.data,
            created_at=record.created_at,
            updated_at=record.updated_at,
            read_at=record.read_at,
        )
