from __future__ import annotations

from pathlib import Path

import imagehash
from PIL import Image, ImageOps, UnidentifiedImageError


def compute_phash(path: Path) -> str | None:
    """64-bit perceptual hash as hex, taken after applying the EXIF orientation."""
    try:
        with Image.open(path) as img:
            return str(imagehash.phash(ImageOps.exif_transpose(img)))
    except (UnidentifiedImageError, OSError):
        return None


def phash_distance(a: str, b: str) -> int:
    if len(a) != len(b):
        raise ValueError(f"phash sizes differ: {a!r} vs {b!r}")
    return int(imagehash.hex_to_hash(a) - imagehash.hex_to_hash(b))
