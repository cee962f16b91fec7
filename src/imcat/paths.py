from __future__ import annotations

from pathlib import Path
import os

APP_NAME = "imcat"


def _xdg_dir(env_var: str, fallback: str) -> Path:
    override = os.environ.get("IMCAT_HOME")
    if override:
        root = Path(override).expanduser()
    else:
        xdg = os.environ.get(env_var)
        base = Path(xdg) if xdg else Path.home() / fallback
        root = base / APP_NAME
    root.mkdir(parents=True, exist_ok=True)
    return root


def data_root() -> Path:
    return _xdg_dir("XDG_DATA_HOME", ".local/share")


def config_root() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", ".config")


def default_db_path() -> Path:
    return data_root() / "catalog.sqlite3"
