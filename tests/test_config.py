from pathlib import Path

import yaml

from imcat.config import load_config, write_default_config


def test_defaults_round_trip_through_yaml(tmp_path: Path) -> None:
    path = write_default_config(tmp_path / "config.yaml")
    data = yaml.safe_load(path.read_text())
    assert data["retention"]["notification_unread_days"] == 30
    assert data["sync"]["audit_retention_days"] == 100

    cfg = load_config(path, overrides={"db_path": str(tmp_path / "db" / "catalog.sqlite3")})
    assert cfg.trash.days == 30
    assert cfg.buckets.order == "desc"
    assert cfg.db_path.parent.exists()


def test_overrides_merge_into_sections(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "db_path": str(tmp_path / "catalog.sqlite3"),
                "retention": {"notification_read_days": 7},
                "duplicates": {"max_distance": 3},
            }
        )
    )

    cfg = load_config(path, overrides={"retention": {"notification_unread_days": 60}, "ingest": {"owner_id": "alice"}})

    assert cfg.retention.notification_read_days == 7
    assert cfg.retention.notification_unread_days == 60
    assert cfg.retention.notification_deleted_days == 3
    assert cfg.duplicates.max_distance == 3
    assert cfg.ingest.owner_id == "alice"
    assert cfg.ingest.device_id == "imcat-cli"


def test_write_default_config_keeps_existing_file(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("busy_timeout: 5\n")
    write_default_config(path)
    assert path.read_text() == "busy_timeout: 5\n"
