from __future__ import annotations

from rich.panel import Panel
from rich.table import Table

from ..models import ContainerEntry, LogPage
from ..util import format_timestamp, from_epoch_seconds
from .common import console, filter_line, page_line


def render_logs(result: LogPage, page: int, size: int, filters: dict | None = None):
    header = [
        "[bold]LOGS[/bold]",
        f"Filters: {filter_line(filters or {})}",
        page_line(result.total, page, size, len(result.logs)),
    ]
    if result.error:
        header.append(f"[red]Error:[/red] {result.error}")
    console.print(Panel("\n".join(header), expand=False))

    if not result.logs:
        console.print("[dim]No logs found.[/dim]")
        return

    t = Table(show_lines=False)
    t.add_column("Time", no_wrap=True)
    t.add_column("Player")
    t.add_column("Action")
    t.add_column("Detail", overflow="fold")
    t.add_column("Location")
    for e in result.logs:
        t.add_row(format_timestamp(e.timestamp), e.player_name, e.action, e.detail, e.location_label())
    console.print(t)


def render_containers(rows: list[ContainerEntry], total: int, page: int, size: int, filters: dict | None = None):
    header = [
        "[bold]CONTAINER TRANSACTIONS[/bold]",
        f"Filters: {filter_line(filters or {})}",
        page_line(total, page, size, len(rows)),
    ]
    console.print(Panel("\n".join(header), expand=False))

    if not rows:
        console.print("[dim]No container transactions found.[/dim]")
        return

    t = Table()
    t.add_column("Time", no_wrap=True)
    t.add_column("Player")
    t.add_column("Action")
    t.add_column("Container")
    t.add_column("Material")
    t.add_column("Amount", justify="right")
    t.add_column("Location")
    for r in rows:
        t.add_row(
            format_timestamp(from_epoch_seconds(r.time)),
            r.player_name,
            r.action_label,
            r.container_type,
            r.material,
            str(r.amount),
            r.location_label(),
        )
    console.print(t)
