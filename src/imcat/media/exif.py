from __future__ import annotations

from pathlib import Path

from PIL import ExifTags, Image, UnidentifiedImageError

EXIF_TAGS = {v: k for k, v in ExifTags.TAGS.items()}
# DateTimeOriginal lives in the Exif sub-IFD, not in IFD0.
EXIF_IFD = 0x8769


def extract_exif(path: Path) -> dict[str, object]:
    out: dict[str, object] = {}
    try:
        with Image.open(path) as img:
            exif = img.getexif()
            width, height = img.size
    except (UnidentifiedImageError, OSError):
        return out

    out["width"] = width
    out["height"] = height
    if not exif:
        return out

    sub = exif.get_ifd(EXIF_IFD)
    dt = sub.get(EXIF_TAGS.get("DateTimeOriginal")) or exif.get(EXIF_TAGS.get("DateTime"))
    model = exif.get(EXIF_TAGS.get("Model"))
    if dt:
        out["datetime"] = str(dt)
    if model:
        out["camera_model"] = str(model)
    return out
