from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from actionlog.models import ContainerEntry, LogEntry
from actionlog.util import format_timestamp, from_epoch_seconds


def to_dict(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {k: to_dict(v) for k, v in asdict(value).items()}
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {k: to_dict(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_dict(v) for v in value]
    return value


def log_entry_payload(entry: LogEntry) -> dict[str, str]:
    """Dashboard row: location is a teleport command, timestamp is local ISO."""
    return {
        "playerName": entry.player_name,
        "action": entry.action,
        "detail": entry.detail,
        "location": entry.teleport_command(),
        "timestamp": format_timestamp(entry.timestamp),
    }


def container_payload(entry: ContainerEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "playerName": entry.player_name,
        "action": entry.action_label,
        "containerType": entry.container_type,
        "material": entry.material,
        "amount": entry.amount,
        "location": entry.location_label(),
        "timestamp": format_timestamp(from_epoch_seconds(entry.time)),
    }
