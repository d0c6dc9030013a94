from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .db import ConnectionPool, table_counts
from .repository import QueryEngine


console = Console()


def show_status(pool: ConnectionPool, engine: QueryEngine):
    """Read-only coverage view: row counts per table, logs by action."""
    counts = table_counts(pool)
    by_action = engine.count_by_action()
    pool_stats = pool.stats()

    console.print(
        Panel(
            f"Logs: {counts['logs']}\n"
            f"Container transactions: {counts['container_transactions']}\n"
            f"Pool: {pool_stats}",
            title="STATUS",
        )
    )

    t = Table(title="Logs by action", show_lines=True)
    t.add_column("Action")
    t.add_column("Count", justify="right")
    for label, c in sorted(by_action.items(), key=lambda kv: kv[1], reverse=True):
        t.add_row(label, str(c))
    console.print(t)
