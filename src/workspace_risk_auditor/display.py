"""Rich-based display functions for Workspace Risk Auditor."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .models import (
    ActivityEntry,
    AssetListResult,
    AssetStats,
    BatchItemResult,
    PlatformConnection,
    RiskLevel,
    ScanPhase,
    ScanProgress,
    UnifiedAsset,
)

console = Console()

_LEVEL_COLORS = {
    RiskLevel.HIGH: "red",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.LOW: "green",
}


def _fmt_date(value) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def _flags(asset: UnifiedAsset) -> str:
    """Short labels for the risk-relevant attributes of an asset."""
    meta = asset.metadata
    labels = []
    for attr, label in (
        ("is_public", "public"),
        ("is_domain_shared", "domain"),
        ("external_share_count", "external"),
        ("has_external_editor", "external editor"),
        ("is_orphaned", "orphaned"),
        ("is_inactive", "inactive"),
        ("has_attachment", "attachment"),
        ("is_unsubscribed", "unsubscribed"),
    ):
        if getattr(meta, attr, False):
            labels.append(label)
    if getattr(meta, "is_verified", True) is False:
        labels.append("unverified")
    return ", ".join(labels)


def _warn_partial(failed_sources) -> None:
    if failed_sources:
        names = ", ".join(kind.value for kind in failed_sources)
        console.print(f"[yellow]Partial results: could not read {names}. Counts cover the other sources only.[/yellow]")


def display_assets(result: AssetListResult) -> None:
    """Display one page of assets as a table."""
    table = Table(title="Assets")
    table.add_column("ID", style="dim")
    table.add_column("Type")
    table.add_column("Name", max_width=40)
    table.add_column("Owner")
    table.add_column("Score", justify="right")
    table.add_column("Level")
    table.add_column("Last activity")
    table.add_column("Flags")

    for asset in result.assets:
        color = _LEVEL_COLORS[asset.risk_level]
        table.add_row(
            str(asset.id),
            asset.asset_type.value,
            asset.name,
            asset.owner,
            f"[{color}]{asset.risk_score}[/{color}]",
            f"[{color}]{asset.risk_level.value}[/{color}]",
            _fmt_date(asset.last_activity_at),
            _flags(asset),
        )

    console.print(table)
    shown_to = result.offset + len(result.assets)
    summary = f"Showing {result.offset + 1 if result.assets else 0}-{shown_to} of {result.total}"
    if result.has_more:
        summary += f"  |  next page: --offset {shown_to}"
    console.print(f"[dim]{summary}[/dim]")
    _warn_partial(result.failed_sources)


def display_stats(stats: AssetStats) -> None:
    lines = [f"[bold]Total assets:[/bold] {stats.total}", ""]
    for asset_type, count in stats.by_type.items():
        lines.append(f"  {asset_type.value}: {count}")
    lines.append("")
    for level in (RiskLevel.HIGH, RiskLevel.MEDIUM, RiskLevel.LOW):
        color = _LEVEL_COLORS[level]
        lines.append(f"  [{color}]{level.value}[/{color}]: {stats.by_risk_level[level]}")
    lines.append("")
    lines.append(f"[bold]High risk:[/bold] {stats.high_risk_count}")
    lines.append(f"[bold]Recently active:[/bold] {stats.recent_activity_count}")

    console.print(Panel("\n".join(lines), title="Risk Summary"))
    _warn_partial(stats.failed_sources)


def display_connections(connections: list[PlatformConnection]) -> None:
    table = Table(title="Connections")
    table.add_column("Source")
    table.add_column("Connected")
    table.add_column("Auth")
    table.add_column("Account")
    table.add_column("Capabilities")
    table.add_column("Last sync")

    for conn in connections:
        caps = [
            name.removeprefix("can_").replace("_", " ")
            for name, allowed in vars(conn.capabilities).items()
            if allowed
        ]
        table.add_row(
            conn.source_kind.value,
            "[green]yes[/green]" if conn.is_connected else "[red]no[/red]",
            conn.auth_type.value if conn.auth_type else "-",
            conn.email or "-",
            ", ".join(caps) or "-",
            conn.last_synced_at.strftime("%Y-%m-%d %H:%M") if conn.last_synced_at else "-",
        )

    console.print(table)


def display_action_result(asset_id: str, action: str, result) -> None:
    if result.success:
        console.print(f"[green]{action} {asset_id}: done[/green]")
        for key, value in result.payload.items():
            console.print(f"  [bold]{key}:[/bold] {value}")
    else:
        console.print(f"[red]{action} {asset_id} failed: {result.error}[/red]")


def display_batch_results(action: str, items: list[BatchItemResult]) -> None:
    table = Table(title=f"Batch {action}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Asset")
    table.add_column("Result")
    table.add_column("Detail")

    succeeded = 0
    for idx, item in enumerate(items, start=1):
        if item.result.success:
            succeeded += 1
            outcome = "[green]ok[/green]"
            detail = ", ".join(f"{k}={v}" for k, v in item.result.payload.items())
        else:
            outcome = "[red]failed[/red]"
            detail = f"{type(item.result.error).__name__}: {item.result.error}"
        table.add_row(str(idx), item.asset_id, outcome, detail)

    console.print(table)
    console.print(
        Panel(
            f"{succeeded} succeeded  |  {len(items) - succeeded} failed\n"
            "[dim]Re-run 'assets' to see the current state.[/dim]",
            title="Summary",
        )
    )


def create_scan_progress(description: str) -> Progress:
    """Create a Rich Progress display for an open-ended scan."""
    return Progress(
        SpinnerColumn(),
        TextColumn(f"[bold blue]{description}"),
        TextColumn("{task.fields[status]}"),
        TimeElapsedColumn(),
        console=console,
    )


def display_scan_summary(source: str, phase: ScanPhase, progress: ScanProgress, error: Exception | None) -> None:
    lines = [
        f"[bold]Source:[/bold] {source}",
        f"[bold]Pages:[/bold] {progress.pages_completed}",
        f"[bold]Processed:[/bold] {progress.processed_count}",
        f"[bold]New:[/bold] {progress.discovered_count}",
    ]
    if error is not None:
        lines.append(f"[red]Failed: {error}[/red]")
    elif phase is ScanPhase.STOPPED:
        lines.append("[yellow]Cancelled.[/yellow]")

    if progress.has_more and progress.continuation_token:
        lines.append("")
        lines.append(f"More remains. Continue with: --token {progress.continuation_token}")

    console.print(Panel("\n".join(lines), title="Scan"))


def display_activity(entries: list[ActivityEntry]) -> None:
    if not entries:
        console.print("[dim]No activity recorded.[/dim]")
        return

    table = Table(title="Recent Activity")
    table.add_column("When", style="dim")
    table.add_column("Action")
    table.add_column("Details")
    for entry in entries:
        table.add_row(entry.timestamp[:19].replace("T", " "), entry.action, entry.details)
    console.print(table)
