from pathlib import Path

from PIL import Image

from imcat.config import AppConfig, DuplicateConfig, IngestConfig, UIConfig
from imcat.service import CatalogService


def _cfg(tmp_path: Path) -> AppConfig:
    return AppConfig(
        db_path=tmp_path / "catalog.sqlite3",
        duplicates=DuplicateConfig(max_distance=6),
        ingest=IngestConfig(owner_id="alice", device_id="laptop"),
        ui=UIConfig(show_logo=False),
    )


def _split_image(size: int = 64) -> Image.Image:
    img = Image.new("RGB", (size, size), (0, 0, 0))
    for x in range(size // 2, size):
        for y in range(size):
            img.putpixel((x, y), (255, 255, 255))
    return img


def _mk_photo(path: Path, taken: str | None = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    img = _split_image()
    if taken is None:
        img.save(path)
        return
    exif = Image.Exif()
    exif[0x0132] = taken  # DateTime
    img.save(path, exif=exif)


def test_import_dedups_pairs_and_groups(tmp_path: Path) -> None:
    root = tmp_path / "photos"
    _mk_photo(root / "trip" / "IMG_0001.jpg", taken="2021:07:04 10:00:00")
    (root / "trip" / "IMG_0001.mov").write_bytes(b"fake-quicktime-payload")
    _mk_photo(root / "copies" / "same.png")
    (root / "copies" / "same2.png").write_bytes((root / "copies" / "same.png").read_bytes())
    (root / "notes.txt").write_text("not media")

    svc = CatalogService(_cfg(tmp_path))
    stats = svc.import_folder(root)

    assert stats["scanned"] == 4
    assert stats["created"] == 3
    assert stats["duplicates"] == 1
    assert stats["paired"] == 1

    # The motion half is hidden, so the gallery shows the still and the png.
    buckets = svc.time_buckets()
    assert sum(b["count"] for b in buckets) == 2
    july = svc.time_bucket("2021-07-01")
    assert [a["original_file_name"] for a in july] == ["IMG_0001.jpg"]
    assert july[0]["live_photo_video_id"] is not None
    assert july[0]["local_date_time"] == "2021-07-04T10:00:00"

    # A JPEG and a PNG of the same picture differ in bytes but not in perceptual hash.
    groups = svc.duplicates()
    assert len(groups) == 1
    assert sorted(a["original_file_name"] for a in groups[0]["assets"]) == ["IMG_0001.jpg", "same.png"]


def test_reimport_creates_nothing(tmp_path: Path) -> None:
    root = tmp_path / "photos"
    _mk_photo(root / "a.png")
    svc = CatalogService(_cfg(tmp_path))

    first = svc.import_folder(root)
    second = svc.import_folder(root)

    assert first["created"] == 1
    assert second["created"] == 0
    assert second["duplicates"] == 1
    assert svc.statistics() == {"images": 1, "videos": 0, "total": 1}


def test_upload_single_file_and_live_match(tmp_path: Path) -> None:
    still = tmp_path / "in" / "IMG_9.jpg"
    _mk_photo(still)
    motion = tmp_path / "in" / "IMG_9.mov"
    motion.write_bytes(b"motion")
    svc = CatalogService(_cfg(tmp_path))

    up_still = svc.upload(still, live_photo_cid="cid-9")
    up_motion = svc.upload(motion, live_photo_cid="cid-9")

    assert up_still["status"] == "created"
    assert up_motion["paired_with"] == up_still["id"]
    match = svc.live_match(up_still["id"])
    assert match is not None and match["id"] == up_motion["id"]
    assert svc.upload(still)["status"] == "duplicate"
