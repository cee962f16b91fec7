from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from imcat.paths import config_root, default_db_path


@dataclass(slots=True)
class SyncConfig:
    audit_retention_days: int = 100
    page_limit: int = 1000


@dataclass(slots=True)
class RetentionConfig:
    notification_deleted_days: float = 3
    notification_read_days: float = 2
    notification_read_created_days: float = 15
    notification_unread_days: float = 30


@dataclass(slots=True)
class TrashConfig:
    enabled: bool = True
    days: float = 30


@dataclass(slots=True)
class DuplicateConfig:
    max_distance: int = 6


@dataclass(slots=True)
class BucketConfig:
    size: str = "MONTH"
    order: str = "desc"


@dataclass(slots=True)
class IngestConfig:
    owner_id: str = "local"
    device_id: str = "imcat-cli"
    mask: str = "**/*.{jpg,jpeg,png,webp,heic,heif,tif,tiff,mov,mp4}"
    compute_phash: bool = True
    detect_duplicates: bool = True


@dataclass(slots=True)
class UIConfig:
    show_logo: bool = True


@dataclass(slots=True)
class AppConfig:
    db_path: Path = field(default_factory=default_db_path)
    busy_timeout: float = 30.0
    sync: SyncConfig = field(default_factory=SyncConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    trash: TrashConfig = field(default_factory=TrashConfig)
    duplicates: DuplicateConfig = field(default_factory=DuplicateConfig)
    buckets: BucketConfig = field(default_factory=BucketConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    ui: UIConfig = field(default_factory=UIConfig)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def _to_config(data: dict[str, Any]) -> AppConfig:
    return AppConfig(
        db_path=Path(data.get("db_path", str(default_db_path()))).expanduser(),
        busy_timeout=float(data.get("busy_timeout", 30.0)),
        sync=SyncConfig(**data.get("sync", {})),
        retention=RetentionConfig(**data.get("retention", {})),
        trash=TrashConfig(**data.get("trash", {})),
        duplicates=DuplicateConfig(**data.get("duplicates", {})),
        buckets=BucketConfig(**data.get("buckets", {})),
        ingest=IngestConfig(**data.get("ingest", {})),
        ui=UIConfig(**data.get("ui", {})),
    )


def default_config_path() -> Path:
    return config_root() / "config.yaml"


def load_config(config_path: Path | None = None, overrides: dict[str, Any] | None = None) -> AppConfig:
    path = config_path or default_config_path()
    base: dict[str, Any] = {}
    if path.exists():
        loaded = yaml.safe_load(path.read_text())
        if isinstance(loaded, dict):
            base = loaded
    if overrides:
        base = _merge(base, overrides)
    cfg = _to_config(base)
    cfg.db_path.parent.mkdir(parents=True, exist_ok=True)
    return cfg


def write_default_config(path: Path | None = None) -> Path:
    target = path or default_config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        return target
    data = asdict(AppConfig())
    data["db_path"] = str(data["db_path"])
    target.write_text(yaml.safe_dump(data, sort_keys=False))
    return target
