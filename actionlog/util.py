from __future__ import annotations

import time
from datetime import datetime, timezone

# -------------------------
# Action codes
# -------------------------

UNKNOWN_ACTION = "Unknown"
OTHER_ACTION_CODE = 99

ACTION_LABELS: dict[int, str] = {
    0: "Block Placed",
    1: "Block Broken",
    2: "Container Open",
    3: "Container Close",
    4: "Chat",
    5: "Command",
    6: "Login",
    7: "Logout",
    8: "Item Drop",
    9: "Item Pickup",
}

ACTION_CODES: dict[str, int] = {label: code for code, label in ACTION_LABELS.items()}

CONTAINER_TAKEN = 0
CONTAINER_PLACED = 1

CONTAINER_ACTION_LABELS = {
    CONTAINER_TAKEN: "Taken",
    CONTAINER_PLACED: "Placed",
}


def action_to_code(label: str | None) -> int:
    """Byte code stored for an action label. Unrecognized labels map to 99."""
    if label is None:
        return OTHER_ACTION_CODE
    return ACTION_CODES.get(label.strip(), OTHER_ACTION_CODE)


def code_to_action(code: int | None) -> str:
    if code is None:
        return UNKNOWN_ACTION
    try:
        return ACTION_LABELS.get(int(code), UNKNOWN_ACTION)
    except (TypeError, ValueError):
        return UNKNOWN_ACTION


# -------------------------
# Time helpers
# -------------------------

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def epoch_now() -> int:
    return int(time.time())


def now_seconds() -> datetime:
    """Local wall-clock time truncated to whole seconds."""
    return datetime.now().replace(microsecond=0)


def to_epoch_seconds(value: datetime) -> int:
    # naive datetimes are local time, same as the game server clock
    return int(value.timestamp())


def from_epoch_seconds(value: int) -> datetime:
    return datetime.fromtimestamp(int(value))


def format_timestamp(value: datetime) -> str:
    return value.replace(microsecond=0).isoformat()


# -------------------------
# Locations
# -------------------------

UNKNOWN_WORLD = "unknown"
UNKNOWN_LOCATION = "Unknown"


def has_location(world: str | None) -> bool:
    return bool(world) and world != UNKNOWN_WORLD


def format_location(world: str | None, x: int, y: int, z: int) -> str:
    if not has_location(world):
        return UNKNOWN_LOCATION
    return f"{world} ({x}, {y}, {z})"


def format_teleport(world: str | None, x: int, y: int, z: int) -> str:
    if not has_location(world):
        return UNKNOWN_LOCATION
    return f"/tp {x} {y} {z}"


# -------------------------
# Normalizers
# -------------------------

SQLITE_INT_MAX = 2**63 - 1


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def parse_int(value, default: int | None = None) -> int | None:
    """Lenient int parsing for query/CLI parameters. Returns default when invalid."""
    if value is None:
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if not s:
        return default
    try:
        return int(s)
    except ValueError:
        return default


def normalize_sort(value: str | None) -> str:
    return "ASC" if (value or "").strip().upper() == "ASC" else "DESC"


def truncate(text: str | None, limit: int) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit]
