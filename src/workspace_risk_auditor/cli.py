"""CLI entry point for Workspace Risk Auditor."""

from __future__ import annotations

import signal
from contextlib import contextmanager
from pathlib import Path

import click

from .activity import ActivityLog
from .auth import FileCredentialProvider
from .config import AuditorConfig, load_config
from .constants import DEFAULT_LIMIT
from .display import (
    console,
    create_scan_progress,
    display_action_result,
    display_activity,
    display_assets,
    display_batch_results,
    display_connections,
    display_scan_summary,
    display_stats,
)
from .errors import AuditError
from .log_config import setup_logging, verbosity_level
from .models import AssetAction, AssetFilters, AssetSort, AssetType, RiskLevel, ScanMode, SortField, SourceKind
from .service import build_auditor
from .store import RecordStore

_ACTIONS = [a.value for a in AssetAction]


@contextmanager
def _cli_errors():
    try:
        yield
    except AuditError as e:
        raise click.ClickException(str(e)) from e


def _config(ctx: click.Context) -> AuditorConfig:
    return ctx.obj["config"]


@contextmanager
def _auditor(ctx: click.Context):
    with build_auditor(_config(ctx)) as auditor:
        yield auditor


@click.group()
@click.version_option(version="0.1.0", prog_name="workspace-risk-auditor")
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Path to config.json.")
@click.option("-v", "--verbose", count=True, help="Increase log output (-v info, -vv debug).")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: int) -> None:
    """Workspace Risk Auditor - find and fix risky Drive files and Gmail senders."""
    with _cli_errors():
        config = load_config(config_path)
    setup_logging(verbosity_level(verbose, config.log_level))
    ctx.obj = {"config": config}


@cli.command()
@click.option("-t", "--type", "types", multiple=True, type=click.Choice([t.value for t in AssetType]),
              help="Only these asset types (repeatable).")
@click.option("-r", "--risk", "risks", multiple=True, type=click.Choice([r.value for r in RiskLevel]),
              help="Only these risk levels (repeatable).")
@click.option("-s", "--search", default=None, help="Case-insensitive match on name or owner.")
@click.option("--orphaned/--not-orphaned", default=None, help="Files whose owner left the workspace.")
@click.option("--inactive/--active", default=None, help="Files not modified for a long time.")
@click.option("--public/--private", default=None, help="Files shared with anyone.")
@click.option("--verified/--unverified", default=None, help="Senders and messages passing SPF/DKIM.")
@click.option("--unsubscribable/--no-unsubscribe", "has_unsubscribe", default=None,
              help="Senders offering an unsubscribe link.")
@click.option("--sort", "sort_field", default=SortField.RISK_SCORE.value,
              type=click.Choice([f.value for f in SortField]), help="Sort field.")
@click.option("--order", default="desc", type=click.Choice(["asc", "desc"]), help="Sort order.")
@click.option("--limit", default=DEFAULT_LIMIT, type=int, help="Page size.")
@click.option("--offset", default=0, type=int, help="Assets to skip.")
@click.pass_context
def assets(
    ctx: click.Context,
    types: tuple[str, ...],
    risks: tuple[str, ...],
    search: str | None,
    orphaned: bool | None,
    inactive: bool | None,
    public: bool | None,
    verified: bool | None,
    has_unsubscribe: bool | None,
    sort_field: str,
    order: str,
    limit: int,
    offset: int,
) -> None:
    """List assets across all sources, riskiest first."""
    with _cli_errors():
        filters = AssetFilters.parse(
            types=types or None,
            risk_levels=risks or None,
            search=search,
            is_orphaned=orphaned,
            is_inactive=inactive,
            is_public=public,
            is_verified=verified,
            has_unsubscribe=has_unsubscribe,
        )
        sort = AssetSort.parse(sort_field, order)
        with _auditor(ctx) as auditor:
            result = auditor.get_assets(filters, sort, limit=limit, offset=offset)

    display_assets(result)


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show risk totals across all sources."""
    with _cli_errors(), _auditor(ctx) as auditor:
        result = auditor.get_stats()
    display_stats(result)


@cli.command()
@click.argument("asset_id")
@click.argument("action", type=click.Choice(_ACTIONS))
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def action(ctx: click.Context, asset_id: str, action: str, yes: bool) -> None:
    """Apply ACTION (delete, unsubscribe, refresh) to one asset."""
    if action == AssetAction.DELETE.value and not yes:
        click.confirm(f"Move {asset_id} to trash?", abort=True)

    with _cli_errors(), _auditor(ctx) as auditor:
        result = auditor.perform_action(asset_id, action)

    display_action_result(asset_id, action, result)
    if not result.success:
        ctx.exit(1)


@cli.command()
@click.argument("action", type=click.Choice(_ACTIONS))
@click.argument("asset_ids", nargs=-1, required=True)
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def batch(ctx: click.Context, action: str, asset_ids: tuple[str, ...], yes: bool) -> None:
    """Apply ACTION to several assets; each one succeeds or fails on its own."""
    if action == AssetAction.DELETE.value and not yes:
        click.confirm(f"Move {len(asset_ids)} assets to trash?", abort=True)

    with _cli_errors(), _auditor(ctx) as auditor:
        items = auditor.perform_batch(asset_ids, action)

    display_batch_results(action, items)
    if any(not item.result.success for item in items):
        ctx.exit(1)


@cli.command()
@click.argument("source", type=click.Choice([k.value for k in SourceKind]))
@click.option("--quick", is_flag=True, help="Only items changed in the last 30 days.")
@click.option("--no-auto-continue", is_flag=True, help="Stop after one page.")
@click.option("--limit", default=None, type=int, help="Stop after this many items (default from config).")
@click.option("--page-size", default=None, type=int, help="Items per page.")
@click.option("--token", default=None, help="Continue from a previous scan's token.")
@click.pass_context
def scan(
    ctx: click.Context,
    source: str,
    quick: bool,
    no_auto_continue: bool,
    limit: int | None,
    page_size: int | None,
    token: str | None,
) -> None:
    """Discover items from SOURCE into the local store. Ctrl-C stops after the current page."""
    kind = SourceKind(source)
    if limit is None:
        limit = _config(ctx).auto_continue_limit
    with _cli_errors(), _auditor(ctx) as auditor, create_scan_progress(f"Scanning {source}") as progress:
        task = progress.add_task("scan", total=None, status="starting")

        def _on_page(snapshot) -> None:
            progress.update(
                task,
                status=f"{snapshot.pages_completed} pages, {snapshot.processed_count} items, "
                f"{snapshot.discovered_count} new",
            )

        controller = auditor.scan_controller(kind, page_size=page_size, on_page=_on_page)

        def _request_cancel(signum, frame) -> None:  # noqa: ANN001
            progress.update(task, status="cancelling after this page...")
            controller.cancel()

        previous = signal.signal(signal.SIGINT, _request_cancel)
        try:
            controller.start(
                mode=ScanMode.QUICK if quick else ScanMode.FULL,
                auto_continue=not no_auto_continue,
                auto_continue_limit=limit,
                continuation_token=token,
            )
        finally:
            signal.signal(signal.SIGINT, previous)

    display_scan_summary(source, controller.phase, controller.progress(), controller.error)
    if controller.error is not None:
        ctx.exit(1)


@cli.command()
@click.pass_context
def connections(ctx: click.Context) -> None:
    """Show which sources are connected and what they allow."""
    with _cli_errors(), _auditor(ctx) as auditor:
        statuses = auditor.connections()
    display_connections(statuses)


@cli.command()
@click.argument("source", type=click.Choice(["drive", "gmail"]))
@click.pass_context
def auth(ctx: click.Context, source: str) -> None:
    """Authorize access to Drive or Gmail in the browser."""
    kind = SourceKind.DRIVE if source == "drive" else SourceKind.SENDER
    provider = FileCredentialProvider(delegated_user=_config(ctx).delegated_user)
    try:
        email = provider.authorize(kind)
    except FileNotFoundError as e:
        raise click.ClickException(str(e)) from e

    with ActivityLog(_config(ctx).store_path, max_entries=_config(ctx).activity_log_limit) as activity:
        activity.add("connect", f"{source}: {email}")
    console.print(f"[green]Authenticated {source} as {email}[/green]")


@cli.group(name="activity")
def activity_group() -> None:
    """Show or clear the activity log."""


@activity_group.command(name="show")
@click.pass_context
def activity_show(ctx: click.Context) -> None:
    """Show recent scans and actions."""
    config = _config(ctx)
    with ActivityLog(config.store_path, max_entries=config.activity_log_limit) as activity:
        entries = activity.entries()
    display_activity(entries)


@activity_group.command(name="clear")
@click.pass_context
def activity_clear(ctx: click.Context) -> None:
    """Delete every activity entry."""
    with ActivityLog(_config(ctx).store_path) as activity:
        activity.clear()
    console.print("[green]Activity log cleared.[/green]")


@cli.group(name="store")
def store_group() -> None:
    """Manage the local record store."""


@store_group.command(name="info")
@click.pass_context
def store_info(ctx: click.Context) -> None:
    """Show store statistics."""
    with RecordStore(_config(ctx).store_path) as store:
        info = store.get_info()

    if not any(info["record_counts"].values()):
        console.print("[dim]Store is empty.[/dim]")
        return

    console.print(f"[bold]Database size:[/bold] {info['db_file_size'] / 1024:.1f} KB")
    for kind, count in info["record_counts"].items():
        synced = info["last_synced"].get(kind, "never")
        console.print(f"[bold]{kind}:[/bold] {count} records (last sync: {synced})")


@store_group.command(name="clear")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def store_clear(ctx: click.Context, yes: bool) -> None:
    """Delete every stored record."""
    if not yes:
        click.confirm("Delete all stored records?", abort=True)
    with RecordStore(_config(ctx).store_path) as store:
        store.clear()
    console.print("[green]Store cleared.[/green]")

