from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path, PurePosixPath
import sqlite3

from imcat.assets import get_by_id
from imcat.config import IngestConfig
from imcat.duplicates import detect_for_asset
from imcat.identity import resolve_upload
from imcat.media.image_io import MOTION_EXTENSIONS, FileStat, iter_media_files, media_type_for, read_media_metadata
from imcat.models import AssetCreate, AssetType, ImportStats, UploadResult, UploadStatus
from imcat.pairing import pair_on_ingest

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestOutcome:
    result: UploadResult
    paired_with: str | None = None
    duplicate_id: str | None = None


def ingest_asset(conn: sqlite3.Connection, asset: AssetCreate, max_distance: int | None = None) -> IngestOutcome:
    """Resolve identity, then pair and group a newly created asset.

    Existing records are returned as they are; pairing and grouping already
    ran when they were created.
    """
    result = resolve_upload(conn, asset)
    outcome = IngestOutcome(result=result)
    if result.status is not UploadStatus.CREATED:
        return outcome

    record = get_by_id(conn, result.id)
    assert record is not None
    outcome.paired_with = pair_on_ingest(conn, record)

    if max_distance is not None and record.phash:
        # Pairing may have hidden the new asset; hidden halves are never grouped.
        record = get_by_id(conn, result.id)
        assert record is not None
        if record.is_visible:
            outcome.duplicate_id = detect_for_asset(conn, record, max_distance)
    return outcome


def _stem_key(rel_path: str) -> tuple[str, str]:
    p = PurePosixPath(rel_path)
    return str(p.parent), p.stem.lower()


def live_photo_cids(files: list[FileStat]) -> dict[str, str]:
    """Map ``rel_path`` to a content identifier for stills with a same-stem QuickTime clip beside them."""
    stills: dict[tuple[str, str], list[str]] = {}
    motions: dict[tuple[str, str], list[str]] = {}
    for fs in files:
        key = _stem_key(fs.rel_path)
        if fs.abs_path.suffix.lower() in MOTION_EXTENSIONS:
            motions.setdefault(key, []).append(fs.rel_path)
        elif media_type_for(fs.abs_path) is AssetType.IMAGE:
            stills.setdefault(key, []).append(fs.rel_path)

    out: dict[str, str] = {}
    for key, rels in stills.items():
        if key not in motions:
            continue
        folder, stem = key
        cid = f"stem:{folder}/{stem}"
        for rel in [*rels, *motions[key]]:
            out[rel] = cid
    return out


def _asset_create(fs: FileStat, cfg: IngestConfig, cid: str | None) -> AssetCreate:
    md = read_media_metadata(fs, compute_hash=cfg.compute_phash)
    return AssetCreate(
        owner_id=cfg.owner_id,
        device_id=cfg.device_id,
        device_asset_id=str(fs.abs_path),
        type=md.type.value,
        checksum=md.checksum,
        original_path=str(fs.abs_path),
        original_file_name=fs.abs_path.name,
        file_created_at=md.file_created_at,
        file_modified_at=md.file_modified_at,
        local_date_time=md.local_date_time,
        live_photo_cid=cid,
        phash=md.phash,
        width=md.width,
        height=md.height,
    )


def import_folder(
    conn: sqlite3.Connection,
    root: Path,
    cfg: IngestConfig,
    max_distance: int | None = None,
) -> ImportStats:
    stats = ImportStats()
    files = list(iter_media_files(root, cfg.mask))
    cids = live_photo_cids(files)
    distance = max_distance if cfg.detect_duplicates else None

    for fs in files:
        stats.scanned += 1
        outcome = ingest_asset(conn, _asset_create(fs, cfg, cids.get(fs.rel_path)), distance)
        status = outcome.result.status
        if status is UploadStatus.CREATED:
            stats.created += 1
            stats.created_ids.append(outcome.result.id)
        elif status is UploadStatus.DUPLICATE:
            stats.duplicates += 1
        else:
            stats.existing += 1
        if outcome.paired_with:
            stats.paired += 1
        if outcome.duplicate_id:
            stats.grouped += 1

    logger.info(
        "imported %s: scanned=%d created=%d duplicates=%d existing=%d",
        root,
        stats.scanned,
        stats.created,
        stats.duplicates,
        stats.existing,
    )
    return stats


def upload_file(
    conn: sqlite3.Connection,
    path: Path,
    cfg: IngestConfig,
    max_distance: int | None = None,
    live_photo_cid: str | None = None,
) -> IngestOutcome:
    st = path.stat()
    fs = FileStat(abs_path=path.resolve(), rel_path=path.name, size=st.st_size, mtime=st.st_mtime, ctime=st.st_ctime)
    asset = _asset_create(fs, cfg, live_photo_cid)
    return ingest_asset(conn, asset, max_distance if cfg.detect_duplicates else None)
