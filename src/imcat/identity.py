"""Content-addressed identity for incoming assets.

An upload is keyed twice: by ``(owner, library, checksum)`` for content and by
``(owner, device, device_asset_id)`` for the client's own bookkeeping. Both
keys are unique indexes in the schema, so two concurrent uploads of the same
bytes cannot both insert; the loser's ``IntegrityError`` is turned back into a
lookup by :func:`imcat.db.insert_or_get`.

Checksum equality is taken as content equality. A SHA-1 collision between
different files is indistinguishable from a re-upload here.
"""

from __future__ import annotations

import logging
import sqlite3

from imcat.assets import create_asset, get_by_checksum, get_by_device_asset
from imcat.db import insert_or_get
from imcat.models import AssetCreate, UploadResult, UploadStatus

logger = logging.getLogger(__name__)


def find_existing(conn: sqlite3.Connection, asset: AssetCreate) -> UploadResult | None:
    found = get_by_checksum(conn, asset.owner_id, asset.checksum, asset.library_id)
    if found is not None:
        return UploadResult(id=found.id, status=UploadStatus.DUPLICATE, is_trashed=found.is_trashed)

    # A device re-announcing an asset it already registered, possibly after a local edit.
    found = get_by_device_asset(conn, asset.owner_id, asset.device_id, asset.device_asset_id)
    if found is not None:
        return UploadResult(id=found.id, status=UploadStatus.EXISTING_DEVICE_ASSET, is_trashed=found.is_trashed)
    return None


def resolve_upload(conn: sqlite3.Connection, asset: AssetCreate) -> UploadResult:
    existing = find_existing(conn, asset)
    if existing is not None:
        return existing

    def _insert(c: sqlite3.Connection) -> UploadResult:
        record = create_asset(c, asset)
        return UploadResult(id=record.id, status=UploadStatus.CREATED)

    result, created = insert_or_get(conn, _insert, lambda c: find_existing(c, asset))
    if not created:
        logger.info(
            "concurrent upload of %s by %s resolved to %s",
            asset.device_asset_id,
            asset.owner_id,
            result.id,
        )
    return result
