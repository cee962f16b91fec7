from pathlib import Path

from PIL import Image
from typer.testing import CliRunner
import yaml

from imcat.cli import app


def _config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "db_path": str(tmp_path / "catalog.sqlite3"),
                "ingest": {"owner_id": "alice"},
                "ui": {"show_logo": False},
            }
        )
    )
    return path


def test_import_then_status_and_buckets(tmp_path: Path) -> None:
    root = tmp_path / "photos"
    root.mkdir()
    Image.new("RGB", (16, 16), (10, 200, 30)).save(root / "a.png")
    cfg = _config(tmp_path)
    runner = CliRunner()

    imported = runner.invoke(app, ["--config", str(cfg), "import", str(root), "--json"], env={"NO_COLOR": "1"})
    assert imported.exit_code == 0, imported.output
    assert '"created": 1' in imported.output

    status = runner.invoke(app, ["--config", str(cfg), "status", "--json"], env={"NO_COLOR": "1"})
    assert status.exit_code == 0, status.output
    assert '"assets": 1' in status.output

    buckets = runner.invoke(app, ["--config", str(cfg), "buckets", "--json"], env={"NO_COLOR": "1"})
    assert buckets.exit_code == 0, buckets.output
    assert '"count": 1' in buckets.output


def test_catalog_errors_exit_with_status_one(tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    runner = CliRunner()

    result = runner.invoke(app, ["--config", str(cfg), "buckets", "--size", "WEEK"], env={"NO_COLOR": "1"})

    assert result.exit_code == 1
    assert "InvalidRange" in result.output

    notes = tmp_path / "notes.txt"
    notes.write_text("not media")
    upload = runner.invoke(app, ["--config", str(cfg), "upload", str(notes)], env={"NO_COLOR": "1"})

    assert upload.exit_code == 1
    assert "unsupported media file" in upload.output


def test_notify_create_and_list(tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    runner = CliRunner()

    created = runner.invoke(
        app,
        ["--config", str(cfg), "notify", "create", "--user", "alice", "--title", "Backup failed", "--type", "BackupFailed", "--json"],
        env={"NO_COLOR": "1"},
    )
    assert created.exit_code == 0, created.output

    listed = runner.invoke(app, ["--config", str(cfg), "notify", "list", "--user", "alice", "--json"], env={"NO_COLOR": "1"})
    assert listed.exit_code == 0, listed.output
    assert "Backup failed" in listed.output
