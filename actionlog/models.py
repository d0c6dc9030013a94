from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .util import (
    CONTAINER_ACTION_LABELS,
    UNKNOWN_WORLD,
    clamp,
    epoch_now,
    format_location,
    format_teleport,
    now_seconds,
)

SMALLINT_MIN = -32768
SMALLINT_MAX = 32767


def _set_coordinates(record) -> None:
    # raises ValueError/TypeError here, not later inside a batch insert
    object.__setattr__(record, "x", int(record.x))
    object.__setattr__(record, "y", clamp(int(record.y), SMALLINT_MIN, SMALLINT_MAX))
    object.__setattr__(record, "z", int(record.z))


@dataclass(frozen=True)
class Location:
    world: str
    x: int
    y: int
    z: int


@dataclass(frozen=True)
class LogEvent:
    """One player/world action, immutable once handed to a queue."""

    player_name: str
    action: str
    detail: str = ""
    world: str = UNKNOWN_WORLD
    x: int = 0
    y: int = 0
    z: int = 0
    timestamp: datetime = field(default_factory=now_seconds)

    def __post_init__(self):
        if not self.player_name or not self.player_name.strip():
            raise ValueError("player_name must be non-empty")
        if self.detail is None:
            object.__setattr__(self, "detail", "")
        if not self.world:
            object.__setattr__(self, "world", UNKNOWN_WORLD)
        _set_coordinates(self)
        if self.timestamp.microsecond:
            object.__setattr__(self, "timestamp", self.timestamp.replace(microsecond=0))

    @classmethod
    def at(cls, player_name: str, action: str, detail: str = "", location: Location | None = None, timestamp: datetime | None = None) -> "LogEvent":
        kwargs = {}
        if timestamp is not None:
            kwargs["timestamp"] = timestamp
        if location is None:
            return cls(player_name, action, detail, **kwargs)
        return cls(player_name, action, detail, location.world, location.x, location.y, location.z, **kwargs)


@dataclass(frozen=True)
class ContainerTransaction:
    """One item movement into (action=1) or out of (action=0) a container."""

    player_name: str
    action: int
    container_type: str
    material: str
    amount: int = 1
    world: str = UNKNOWN_WORLD
    x: int = 0
    y: int = 0
    z: int = 0
    time: int = field(default_factory=epoch_now)

    def __post_init__(self):
        if not self.player_name or not self.player_name.strip():
            raise ValueError("player_name must be non-empty")
        if not self.material or not self.material.strip():
            raise ValueError("material must be non-empty")
        if self.action not in CONTAINER_ACTION_LABELS:
            raise ValueError(f"container action must be 0 or 1, got {self.action!r}")
        object.__setattr__(self, "amount", clamp(int(self.amount), 1, SMALLINT_MAX))
        if not self.world:
            object.__setattr__(self, "world", UNKNOWN_WORLD)
        _set_coordinates(self)


@dataclass(frozen=True)
class ContainerPayload:
    container_type: str
    material: str
    amount: int = 1


@dataclass(frozen=True)
class EventEnvelope:
    """Normalized record handed over by an event source.

    `kind` is an action label ("Login", "Block Broken", ...) or one of the
    container kinds, in which case `container` must be set.
    """

    kind: str
    player: str
    detail: str = ""
    location: Location | None = None
    timestamp: datetime | None = None
    container: ContainerPayload | None = None


@dataclass(frozen=True)
class LogFilter:
    player: str | None = None
    action: str | None = None
    text: str | None = None
    since: int | None = None
    until: int | None = None
    container_type: str | None = None

    def is_empty(self) -> bool:
        return not any(
            [
                (self.player or "").strip(),
                (self.action or "").strip(),
                (self.text or "").strip(),
                self.since is not None,
                self.until is not None,
                (self.container_type or "").strip(),
            ]
        )


@dataclass(frozen=True)
class LogEntry:
    id: int | None
    player_name: str
    action: str
    detail: str
    world: str
    x: int
    y: int
    z: int
    timestamp: datetime

    def location_label(self) -> str:
        return format_location(self.world, self.x, self.y, self.z)

    def teleport_command(self) -> str:
        return format_teleport(self.world, self.x, self.y, self.z)


@dataclass(frozen=True)
class ContainerEntry:
    id: int | None
    time: int
    player_name: str
    action: int
    container_type: str
    material: str
    amount: int
    world: str
    x: int
    y: int
    z: int

    @property
    def action_label(self) -> str:
        return CONTAINER_ACTION_LABELS.get(self.action, "Unknown")

    def location_label(self) -> str:
        return format_location(self.world, self.x, self.y, self.z)


@dataclass(frozen=True)
class LogPage:
    logs: list[LogEntry]
    total: int
    error: str | None = None
