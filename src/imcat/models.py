from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AssetType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class AssetOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class TimeBucketSize(str, Enum):
    DAY = "DAY"
    MONTH = "MONTH"


class UploadStatus(str, Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    EXISTING_DEVICE_ASSET = "existing_device_asset"


@dataclass(slots=True)
class AssetRecord:
    id: str
    owner_id: str
    library_id: str | None
    device_id: str
    device_asset_id: str
    type: str
    checksum: bytes
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
    stack_id: str | None = None
    live_photo_cid: str | None = None
    live_photo_video_id: str | None = None
    phash: str | None = None
    width: int | None = None
    height: int | None = None
    duplicate_id: str | None = None

    @property
    def is_trashed(self) -> bool:
        return self.deleted_at is not None


@dataclass(slots=True)
class AssetCreate:
    owner_id: str
    device_id: str
    device_asset_id: str
    type: str
    checksum: bytes
    original_path: str
    file_created_at: str
    file_modified_at: str
    local_date_time: str
    original_file_name: str | None = None
    library_id: str | None = None
    is_favorite: bool = False
    is_archived: bool = False
    is_visible: bool = True
    live_photo_cid: str | None = None
    phash: str | None = None
    width: int | None = None
    height: int | None = None


@dataclass(slots=True)
class UploadResult:
    id: str
    status: UploadStatus
    is_trashed: bool = False


@dataclass(slots=True)
class NotificationRecord:
    id: str
    user_id: str
    level: str
    type: str
    title: str
    description: str | None
    data: dict[str, Any] | None
    created_at: str
    updated_at: str
    read_at: str | None = None
    deleted_at: str | None = None


@dataclass(slots=True)
class NotificationCreate:
    user_id: str
    title: str
    level: str = "info"
    type: str = "Custom"
    description: str | None = None
    data: dict[str, Any] | None = None
    created_at: str | None = None
    read_at: str | None = None


@dataclass(slots=True)
class NotificationSearch:
    id: str | None = None
    level: str | None = None
    type: str | None = None
    unread: bool = False


@dataclass(slots=True)
class ImportStats:
    scanned: int = 0
    created: int = 0
    duplicates: int = 0
    existing: int = 0
    paired: int = 0
    grouped: int = 0
    created_ids: list[str] = field(default_factory=list)
