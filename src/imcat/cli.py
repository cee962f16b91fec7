from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Annotated, Any, Callable, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from imcat.config import default_config_path, load_config, write_default_config
from imcat.errors import CatalogError
from imcat.models import NotificationCreate, NotificationSearch
from imcat.service import CatalogService
from imcat.util.logging import setup_logging, use_color

app = typer.Typer(help="imcat: media asset catalog")
sync_app = typer.Typer(help="Client cache synchronization")
duplicates_app = typer.Typer(help="Duplicate groups")
live_app = typer.Typer(help="Live Photo pairing")
asset_app = typer.Typer(help="Asset flags and trash")
notify_app = typer.Typer(help="User notifications")
app.add_typer(sync_app, name="sync")
app.add_typer(duplicates_app, name="duplicates")
app.add_typer(duplicates_app, name="dupes")
app.add_typer(live_app, name="live")
app.add_typer(asset_app, name="asset")
app.add_typer(notify_app, name="notify")

T = TypeVar("T")


@dataclass(slots=True)
class AppState:
    service: CatalogService
    console: Console
    config_path: Path


def _print_logo(console: Console, show_logo: bool) -> None:
    if not show_logo:
        return
    logo = (
        " ██   ███    ███    ██████    █████   ████████ \n"
        " ██   ████  ████   ██        ██   ██     ██    \n"
        " ██   ██ ████ ██   ██        ███████     ██    \n"
        " ██   ██  ██  ██   ██        ██   ██     ██    \n"
        " ██   ██      ██    ██████   ██   ██     ██    "
    )
    console.print()
    console.print(f"[bold cyan]{logo}[/bold cyan]")
    console.print("[dim]buckets • sync • duplicates • live photos[/dim]")
    console.print()


def _state(ctx: typer.Context) -> AppState:
    st = ctx.obj
    if not isinstance(st, AppState):
        raise RuntimeError("app state not initialized")
    return st


def _call(st: AppState, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    try:
        return fn(*args, **kwargs)
    except CatalogError as exc:
        st.console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
        raise typer.Exit(1) from exc


def _emit_obj(console: Console, obj: dict, json_out: bool) -> None:
    if json_out:
        typer.echo(json.dumps(obj, indent=2))
        return
    for k, v in obj.items():
        console.print(f"[bold]{k}[/bold]: {v}")


def _emit_assets(console: Console, rows: list[dict], json_out: bool, title: str) -> None:
    if json_out:
        typer.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        console.print("[dim]no assets[/dim]")
        return
    table = Table(title=title)
    table.add_column("id")
    table.add_column("type")
    table.add_column("local_date_time")
    table.add_column("file")
    table.add_column("flags")
    for row in rows:
        flags = [
            name
            for name, on in [
                ("fav", row.get("is_favorite")),
                ("arch", row.get("is_archived")),
                ("trash", row.get("is_trashed")),
                ("hidden", not row.get("is_visible", True)),
                ("dup", row.get("duplicate_id")),
                ("live", row.get("live_photo_video_id")),
            ]
            if on
        ]
        table.add_row(
            str(row.get("id", "")),
            str(row.get("type", "")),
            str(row.get("local_date_time", "")),
            str(row.get("original_file_name", "")),
            ",".join(flags),
        )
    console.print(table)


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[Path | None, typer.Option("--config", help="Config YAML path")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")] = False,
) -> None:
    setup_logging(verbose)
    cfg_path = config.expanduser() if config else default_config_path()
    if not cfg_path.exists():
        write_default_config(cfg_path)
    cfg = load_config(cfg_path)
    svc = CatalogService(cfg)
    color_on = use_color()
    console = Console(color_system="auto" if color_on else None, force_terminal=color_on)
    _print_logo(console, show_logo=cfg.ui.show_logo)
    ctx.obj = AppState(
        service=svc,
        console=console,
        config_path=cfg_path,
    )


@app.command("init-config")
def init_config(
    ctx: typer.Context,
    path: Annotated[Path | None, typer.Option("--path", help="Write config to this path")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    written = write_default_config(path.expanduser() if path else None)
    _emit_obj(st.console, {"config_path": str(written)}, json_out)


@app.command("import")
def import_cmd(
    ctx: typer.Context,
    root: Annotated[Path, typer.Argument(help="Folder to scan")],
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    stats = _call(st, st.service.import_folder, root.expanduser())
    _emit_obj(st.console, stats, json_out)


@app.command("upload")
def upload_cmd(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="Media file")],
    live_photo_cid: Annotated[str | None, typer.Option("--live-photo-cid", help="Content identifier shared with the other Live Photo half")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    result = _call(st, st.service.upload, path.expanduser(), live_photo_cid=live_photo_cid)
    _emit_obj(st.console, result, json_out)


@app.command("buckets")
def buckets_cmd(
    ctx: typer.Context,
    user: Annotated[list[str], typer.Option("--user", help="Owner id (repeatable)")] = [],
    size: Annotated[str | None, typer.Option("--size", help="DAY or MONTH")] = None,
    order: Annotated[str | None, typer.Option("--order", help="asc or desc")] = None,
    favorite: Annotated[bool | None, typer.Option("--favorite/--no-favorite")] = None,
    archived: Annotated[bool | None, typer.Option("--archived/--no-archived")] = None,
    trashed: Annotated[bool | None, typer.Option("--trashed/--no-trashed")] = None,
    duplicate: Annotated[bool | None, typer.Option("--duplicate/--no-duplicate")] = None,
    asset_type: Annotated[str | None, typer.Option("--type", help="IMAGE or VIDEO")] = None,
    with_stacked: Annotated[bool, typer.Option("--with-stacked", help="Show one asset per stack")] = False,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    rows = _call(
        st,
        st.service.time_buckets,
        user_ids=user or None,
        size=size,
        order=order,
        is_favorite=favorite,
        is_archived=archived,
        is_trashed=trashed,
        is_duplicate=duplicate,
        asset_type=asset_type,
        with_stacked=with_stacked,
    )
    if json_out:
        typer.echo(json.dumps(rows, indent=2))
        return
    table = Table(title="time buckets")
    table.add_column("bucket")
    table.add_column("count", justify="right")
    for row in rows:
        table.add_row(str(row["time_bucket"]), str(row["count"]))
    st.console.print(table)


@app.command("bucket")
def bucket_cmd(
    ctx: typer.Context,
    time_bucket: Annotated[str, typer.Argument(help="Bucket key, e.g. 2024-05-01")],
    user: Annotated[list[str], typer.Option("--user", help="Owner id (repeatable)")] = [],
    size: Annotated[str | None, typer.Option("--size", help="DAY or MONTH")] = None,
    order: Annotated[str | None, typer.Option("--order", help="asc or desc")] = None,
    trashed: Annotated[bool | None, typer.Option("--trashed/--no-trashed")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    rows = _call(
        st,
        st.service.time_bucket,
        time_bucket,
        user_ids=user or None,
        size=size,
        order=order,
        is_trashed=trashed,
    )
    _emit_assets(st.console, rows, json_out, title=f"bucket {time_bucket}")


@sync_app.command("full")
def sync_full_cmd(
    ctx: typer.Context,
    owner: Annotated[str, typer.Option("--owner")],
    updated_until: Annotated[str | None, typer.Option("--until", help="Ceiling captured at session start")] = None,
    last_id: Annotated[str | None, typer.Option("--last-id")] = None,
    limit: Annotated[int | None, typer.Option("--limit")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    page = _call(st, st.service.full_sync, owner, updated_until=updated_until, last_id=last_id, limit=limit)
    if json_out:
        typer.echo(json.dumps(page, indent=2))
        return
    _emit_assets(st.console, page["assets"], False, title="full sync")
    st.console.print(
        f"[bold]last_id[/bold]: {page['last_id']}  [bold]complete[/bold]: {page['complete']}  "
        f"[bold]until[/bold]: {page['updated_until']}"
    )


@sync_app.command("delta")
def sync_delta_cmd(
    ctx: typer.Context,
    user: Annotated[list[str], typer.Option("--user", help="Owner id (repeatable)")],
    updated_after: Annotated[str, typer.Option("--after", help="Watermark from the previous sync")],
    after_id: Annotated[str | None, typer.Option("--after-id")] = None,
    limit: Annotated[int | None, typer.Option("--limit")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    page = _call(st, st.service.delta_sync, user, updated_after, limit=limit, after_id=after_id)
    if json_out:
        typer.echo(json.dumps(page, indent=2))
        return
    if page["needs_full_sync"]:
        st.console.print("[yellow]watermark is older than the audit log; run a full sync[/yellow]")
        return
    _emit_assets(st.console, page["upserted"], False, title="changed")
    for asset_id in page["deleted"]:
        st.console.print(f"[red]deleted[/red] {asset_id}")
    st.console.print(f"[bold]watermark[/bold]: {page['watermark']}  [bold]has_more[/bold]: {page['has_more']}")


@duplicates_app.command("list")
def duplicates_list_cmd(
    ctx: typer.Context,
    owner: Annotated[str | None, typer.Option("--owner")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    groups = _call(st, st.service.duplicates, owner)
    if json_out:
        typer.echo(json.dumps(groups, indent=2))
        return
    if not groups:
        st.console.print("[dim]no duplicates[/dim]")
        return
    for group in groups:
        _emit_assets(st.console, group["assets"], False, title=f"group {group['duplicate_id']}")


@duplicates_app.command("detect")
def duplicates_detect_cmd(
    ctx: typer.Context,
    owner: Annotated[str | None, typer.Option("--owner")] = None,
    max_distance: Annotated[int | None, typer.Option("--max-distance", help="Perceptual hash distance in bits")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    stats = _call(st, st.service.detect_duplicates, owner, max_distance)
    _emit_obj(st.console, stats, json_out)


@duplicates_app.command("regroup")
def duplicates_regroup_cmd(
    ctx: typer.Context,
    asset_ids: Annotated[list[str], typer.Argument()] = [],
    target: Annotated[str | None, typer.Option("--target", help="Target group id; omit to ungroup")] = None,
    group: Annotated[list[str], typer.Option("--group", help="Source group to merge (repeatable)")] = [],
    exclude: Annotated[list[str], typer.Option("--exclude", help="Asset to drop from source groups (repeatable)")] = [],
) -> None:
    st = _state(ctx)
    _call(st, st.service.regroup, target, asset_ids, duplicate_ids=group, exclude_asset_ids=exclude)
    typer.echo(f"regrouped into {target}" if target else "ungrouped")


@duplicates_app.command("resolve")
def duplicates_resolve_cmd(
    ctx: typer.Context,
    duplicate_id: str,
    keep: Annotated[list[str], typer.Option("--keep")] = [],
    trash: Annotated[list[str], typer.Option("--trash")] = [],
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    result = _call(st, st.service.resolve_duplicates, duplicate_id, keep, trash)
    _emit_obj(st.console, result, json_out)


@live_app.command("match")
def live_match_cmd(
    ctx: typer.Context,
    asset_id: str,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    match = _call(st, st.service.live_match, asset_id)
    if match is None:
        if json_out:
            typer.echo("null")
        else:
            st.console.print("[dim]no live photo sibling[/dim]")
        return
    _emit_assets(st.console, [match], json_out, title="live photo sibling")


@live_app.command("link")
def live_link_cmd(ctx: typer.Context, still_id: str, motion_id: str) -> None:
    st = _state(ctx)
    _call(st, st.service.live_link, still_id, motion_id)
    typer.echo(f"linked {still_id} -> {motion_id}")


@asset_app.command("trash")
def asset_trash_cmd(ctx: typer.Context, asset_ids: list[str]) -> None:
    st = _state(ctx)
    count = _call(st, st.service.trash, asset_ids)
    typer.echo(f"trashed {count}")


@asset_app.command("restore")
def asset_restore_cmd(ctx: typer.Context, asset_ids: list[str]) -> None:
    st = _state(ctx)
    count = _call(st, st.service.restore, asset_ids)
    typer.echo(f"restored {count}")


@asset_app.command("favorite")
def asset_favorite_cmd(
    ctx: typer.Context,
    asset_ids: list[str],
    off: Annotated[bool, typer.Option("--off", help="Clear the flag instead")] = False,
) -> None:
    st = _state(ctx)
    count = _call(st, st.service.update_assets, asset_ids, is_favorite=not off)
    typer.echo(f"updated {count}")


@asset_app.command("archive")
def asset_archive_cmd(
    ctx: typer.Context,
    asset_ids: list[str],
    off: Annotated[bool, typer.Option("--off", help="Clear the flag instead")] = False,
) -> None:
    st = _state(ctx)
    count = _call(st, st.service.update_assets, asset_ids, is_archived=not off)
    typer.echo(f"updated {count}")


@asset_app.command("stats")
def asset_stats_cmd(
    ctx: typer.Context,
    owner: Annotated[str | None, typer.Option("--owner")] = None,
    favorite: Annotated[bool | None, typer.Option("--favorite/--no-favorite")] = None,
    archived: Annotated[bool | None, typer.Option("--archived/--no-archived")] = None,
    trashed: Annotated[bool | None, typer.Option("--trashed/--no-trashed")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    stats = _call(
        st,
        st.service.statistics,
        owner,
        is_favorite=favorite,
        is_archived=archived,
        is_trashed=trashed,
    )
    _emit_obj(st.console, stats, json_out)


@notify_app.command("create")
def notify_create_cmd(
    ctx: typer.Context,
    user: Annotated[str, typer.Option("--user")],
    title: Annotated[str, typer.Option("--title")],
    level: Annotated[str, typer.Option("--level", help="success, error, warning or info")] = "info",
    kind: Annotated[str, typer.Option("--type", help="JobFailed, BackupFailed, SystemMessage or Custom")] = "Custom",
    description: Annotated[str | None, typer.Option("--description")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    row = _call(
        st,
        st.service.notify,
        NotificationCreate(user_id=user, title=title, level=level, type=kind, description=description),
    )
    _emit_obj(st.console, row, json_out)


@notify_app.command("list")
def notify_list_cmd(
    ctx: typer.Context,
    user: Annotated[str, typer.Option("--user")],
    unread: Annotated[bool, typer.Option("--unread")] = False,
    level: Annotated[str | None, typer.Option("--level")] = None,
    kind: Annotated[str | None, typer.Option("--type")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    rows = _call(st, st.service.notifications, user, NotificationSearch(level=level, type=kind, unread=unread))
    if json_out:
        typer.echo(json.dumps(rows, indent=2))
        return
    table = Table(title=f"notifications: {user}")
    table.add_column("id")
    table.add_column("level")
    table.add_column("type")
    table.add_column("title")
    table.add_column("created_at")
    table.add_column("read")
    for row in rows:
        table.add_row(
            str(row["id"]),
            str(row["level"]),
            str(row["type"]),
            str(row["title"]),
            str(row["created_at"]),
            "yes" if row.get("read_at") else "",
        )
    st.console.print(table)


@notify_app.command("read")
def notify_read_cmd(ctx: typer.Context, notification_ids: list[str]) -> None:
    st = _state(ctx)
    count = _call(st, st.service.mark_read, notification_ids)
    typer.echo(f"marked {count} read")


@notify_app.command("rm")
def notify_rm_cmd(ctx: typer.Context, notification_ids: list[str]) -> None:
    st = _state(ctx)
    count = _call(st, st.service.remove_notifications, notification_ids)
    typer.echo(f"removed {count}")


@app.command("cleanup")
def cleanup_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    stats = _call(st, st.service.cleanup)
    _emit_obj(st.console, stats, json_out)


@app.command("status")
def status_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    stats = _call(st, st.service.status)
    _emit_obj(st.console, stats, json_out)
