"""Bounded in-memory buffers between event producers and the batch writer.

Producers call `offer` from any thread and never wait: once a queue holds
`capacity` items, new items are rejected and counted in `dropped`. The
single consumer takes items out with `drain`, which removes up to
`max_items` from the head in one locked step.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Generic, TypeVar

from .models import ContainerTransaction, LogEvent

QUEUE_CAPACITY = 100_000

T = TypeVar("T")


class BoundedQueue(Generic[T]):
    def __init__(self, capacity: int = QUEUE_CAPACITY, name: str = "queue"):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.name = name
        self._capacity = capacity
        self._items: deque[T] = deque()
        self._lock = threading.Lock()
        self._dropped = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def dropped(self) -> int:
        return self._dropped

    def offer(self, item: T) -> bool:
        """Append item unless the queue is full. Never blocks on I/O."""
        with self._lock:
            if len(self._items) >= self._capacity:
                self._dropped += 1
                return False
            self._items.append(item)
            return True

    enqueue = offer

    def drain(self, max_items: int) -> list[T]:
        if max_items <= 0:
            return []
        with self._lock:
            n = min(max_items, len(self._items))
            return [self._items.popleft() for _ in range(n)]

    def size(self) -> int:
        with self._lock:
            return len(self._items)

    __len__ = size


@dataclass(frozen=True)
class QueueStats:
    log_queue: int
    container_queue: int
    log_dropped: int
    container_dropped: int


class IngestionQueues:
    """The two independent queues: generic events and container transactions."""

    def __init__(self, capacity: int = QUEUE_CAPACITY):
        self.logs: BoundedQueue[LogEvent] = BoundedQueue(capacity, name="logs")
        self.containers: BoundedQueue[ContainerTransaction] = BoundedQueue(capacity, name="containers")

    def add_log(self, event: LogEvent) -> bool:
        return self.logs.offer(event)

    def add_container(self, tx: ContainerTransaction) -> bool:
        return self.containers.offer(tx)

    def stats(self) -> QueueStats:
        return QueueStats(
            log_queue=self.logs.size(),
            container_queue=self.containers.size(),
            log_dropped=self.logs.dropped,
            container_dropped=self.containers.dropped,
        )
