from __future__ import annotations

import logging

from .models import ContainerTransaction, EventEnvelope, LogEvent
from .queue import IngestionQueues
from .util import CONTAINER_PLACED, CONTAINER_TAKEN, UNKNOWN_WORLD, to_epoch_seconds

log = logging.getLogger(__name__)

CONTAINER_KINDS = {
    "Container Take": CONTAINER_TAKEN,
    "Container Put": CONTAINER_PLACED,
}


def envelope_to_record(envelope: EventEnvelope) -> LogEvent | ContainerTransaction:
    """Build the immutable record for an envelope. Raises ValueError if invalid."""
    if envelope.kind in CONTAINER_KINDS:
        payload = envelope.container
        if payload is None:
            raise ValueError(f"{envelope.kind} envelope has no container payload")
        loc = envelope.location
        kwargs = {}
        if envelope.timestamp is not None:
            kwargs["time"] = to_epoch_seconds(envelope.timestamp)
        return ContainerTransaction(
            player_name=envelope.player,
            action=CONTAINER_KINDS[envelope.kind],
            container_type=payload.container_type,
            material=payload.material,
            amount=payload.amount,
            world=loc.world if loc else UNKNOWN_WORLD,
            x=loc.x if loc else 0,
            y=loc.y if loc else 0,
            z=loc.z if loc else 0,
            **kwargs,
        )
    return LogEvent.at(
        envelope.player,
        envelope.kind,
        envelope.detail or "",
        location=envelope.location,
        timestamp=envelope.timestamp,
    )


class EventRecorder:
    """Single entry point for event sources.

    Turns envelopes into records and offers them to the matching queue.
    Never raises on bad input and never blocks: the return value tells
    whether the event was queued.
    """

    def __init__(self, queues: IngestionQueues):
        self.queues = queues

    def record(self, envelope: EventEnvelope) -> bool:
        try:
            rec = envelope_to_record(envelope)
        except (TypeError, ValueError) as exc:
            log.debug("Rejected %s envelope for %r: %s", envelope.kind, envelope.player, exc)
            return False
        if isinstance(rec, ContainerTransaction):
            return self.queues.add_container(rec)
        return self.queues.add_log(rec)

    def submit(self, event: LogEvent) -> bool:
        return self.queues.add_log(event)

    def submit_container(self, tx: ContainerTransaction) -> bool:
        return self.queues.add_container(tx)
