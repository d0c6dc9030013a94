from .logs import render_containers, render_logs
from .summary import render_names, render_summary

__all__ = [
    "render_logs",
    "render_containers",
    "render_summary",
    "render_names",
]
