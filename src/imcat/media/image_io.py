from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator

from imcat.errors import InvalidRange
from imcat.ids import sha1_file
from imcat.media.exif import extract_exif
from imcat.media.phash import compute_phash
from imcat.models import AssetType
from imcat.util.time import LOCAL_FORMAT, exif_to_local_iso, to_iso

IMAGE_EXTENSIONS = {
    ".jpg",
    ".jpeg",
    ".png",
    ".webp",
    ".tif",
    ".tiff",
    ".heic",
    ".heif",
}

VIDEO_EXTENSIONS = {
    ".mov",
    ".qt",
    ".mp4",
    ".m4v",
}

# Only QuickTime clips can be the motion half of a Live Photo.
MOTION_EXTENSIONS = {".mov", ".qt"}

SUPPORTED_EXTENSIONS = IMAGE_EXTENSIONS | VIDEO_EXTENSIONS


@dataclass(slots=True)
class FileStat:
    abs_path: Path
    rel_path: str
    size: int
    mtime: float
    ctime: float


@dataclass(slots=True)
class MediaMetadata:
    type: AssetType
    checksum: bytes
    file_created_at: str
    file_modified_at: str
    local_date_time: str
    width: int | None
    height: int | None
    phash: str | None


def _exts_from_mask(mask: str) -> set[str]:
    if "{" in mask and "}" in mask:
        brace = mask[mask.index("{") + 1 : mask.index("}")]
        items = [x.strip().lower() for x in brace.split(",") if x.strip()]
        return {f".{i.lstrip('.')}" for i in items}

    ext = Path(mask).suffix.lower()
    if ext:
        return {ext}
    return set(SUPPORTED_EXTENSIONS)


def media_type_for(path: Path) -> AssetType | None:
    ext = path.suffix.lower()
    if ext in IMAGE_EXTENSIONS:
        return AssetType.IMAGE
    if ext in VIDEO_EXTENSIONS:
        return AssetType.VIDEO
    return None


def iter_media_files(root: Path, mask: str) -> Iterator[FileStat]:
    exts = _exts_from_mask(mask) & SUPPORTED_EXTENSIONS
    if not exts:
        exts = set(SUPPORTED_EXTENSIONS)

    for p in sorted(root.rglob("*")):
        if not p.is_file():
            continue
        if p.suffix.lower() not in exts:
            continue
        rel_path = str(p.relative_to(root)).replace("\\", "/")
        st = p.stat()
        yield FileStat(abs_path=p.resolve(), rel_path=rel_path, size=st.st_size, mtime=st.st_mtime, ctime=st.st_ctime)


def read_media_metadata(fs: FileStat, compute_hash: bool = True) -> MediaMetadata:
    media_type = media_type_for(fs.abs_path)
    if media_type is None:
        raise InvalidRange(f"unsupported media file: {fs.abs_path}")

    modified = datetime.fromtimestamp(fs.mtime)
    created = datetime.fromtimestamp(min(fs.ctime, fs.mtime))
    width: int | None = None
    height: int | None = None
    phash: str | None = None
    local = modified.strftime(LOCAL_FORMAT)

    if media_type is AssetType.IMAGE:
        exif = extract_exif(fs.abs_path)
        width = exif.get("width")  # type: ignore[assignment]
        height = exif.get("height")  # type: ignore[assignment]
        taken = exif_to_local_iso(str(exif["datetime"])) if "datetime" in exif else None
        if taken:
            local = taken
        if compute_hash and width is not None:
            phash = compute_phash(fs.abs_path)

    return MediaMetadata(
        type=media_type,
        checksum=sha1_file(fs.abs_path),
        file_created_at=to_iso(created.astimezone()),
        file_modified_at=to_iso(modified.astimezone()),
        local_date_time=local,
        width=width,
        height=height,
        phash=phash,
    )
