from __future__ import annotations

from rich.console import Console

console = Console()


def page_line(total: int, page: int, size: int, shown: int) -> str:
    pages = max(1, -(-total // size)) if size > 0 else 1
    return f"Matched: {total} | Page {page}/{pages} | Showing: {shown}"


def filter_line(meta: dict) -> str:
    parts = [f"{k}={v}" for k, v in meta.items() if v not in (None, "")]
    return " ".join(parts) or "ALL"
