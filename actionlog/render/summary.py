from __future__ import annotations

from rich.panel import Panel
from rich.table import Table

from ..util import format_timestamp, from_epoch_seconds
from .common import console


def render_summary(data: dict):
    player = data.get("player") or "ALL"
    window = f"{format_timestamp(from_epoch_seconds(data['from']))} → {format_timestamp(from_epoch_seconds(data['to']))}"
    console.print(
        Panel(
            f"Player: {player}\nWindow: {window}\nTotal: {data['total']}",
            title="SUMMARY",
            expand=False,
        )
    )

    counts = data.get("counts") or {}
    if not counts:
        console.print("[dim]No activity in this window.[/dim]")
        return

    t = Table(title="By action")
    t.add_column("Action")
    t.add_column("Count", justify="right")
    for label, c in sorted(counts.items(), key=lambda kv: kv[1], reverse=True):
        t.add_row(label, str(c))
    console.print(t)


def render_names(title: str, names: list[str]):
    if not names:
        console.print(Panel("[dim]None recorded.[/dim]", title=title, expand=False))
        return
    console.print(Panel("\n".join(f"• {n}" for n in names), title=f"{title} ({len(names)})", expand=False))
