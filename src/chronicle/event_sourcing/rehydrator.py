"""AggregateRehydrator — rebuild aggregates from snapshot + events."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic, TypeVar

from ..domain.aggregate import EventSourcedAggregate
from ..domain.events import UnrecognizedEvent

if TYPE_CHECKING:
    from datetime import datetime

    from ..clock import Clock
    from ..domain.events import DomainEvent
    from ..ports.event_store import IEventStore, StoredEvent
    from ..ports.snapshots import ISnapshotStore

logger = logging.getLogger("chronicle.event_sourcing")

T = TypeVar("T", bound=EventSourcedAggregate)


class AggregateRehydrator(Generic[T]):
    """
    Loads event-sourced aggregates from a snapshot (if any) plus the event store.

    **Flow:** get_latest_snapshot(max_version) → restore or create fresh →
    read_events(after snapshot version, up to the bound) → decode leniently →
    replay known events, keep unknown ones as :class:`UnrecognizedEvent`.

    Unknown event types never fail a load. They are not applied, but the
    aggregate version still advances past them so the next append lands on
    the right sequence number.
    """

    def __init__(
        self,
        aggregate_type: type[T],
        event_store: IEventStore,
        *,
        snapshot_store: ISnapshotStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._aggregate_type = aggregate_type
        self._event_store = event_store
        self._snapshot_store = snapshot_store
        self._clock = clock
        self._registry = aggregate_type.event_registry()

    async def load(
        self,
        aggregate_id: str,
        *,
        max_version: int | None = None,
        as_of: datetime | None = None,
        use_snapshot: bool = True,
    ) -> T | None:
        """Reconstitute *aggregate_id* up to *max_version* or *as_of*.

        Returns ``None`` when there is neither a snapshot nor any event.
        Snapshots are skipped for time-bounded loads since a snapshot does
        not record which timestamps it covers.
        """
        aggregate: T | None = None
        if use_snapshot and as_of is None and self._snapshot_store is not None:
            snapshot = await self._snapshot_store.get_latest_snapshot(
                aggregate_id, max_version=max_version
            )
            if snapshot is not None:
                aggregate = self._aggregate_type.from_snapshot(snapshot, self._clock)
                logger.debug(
                    "Seeded %s %s from snapshot at version %d",
                    self._aggregate_type.__name__,
                    aggregate_id,
                    snapshot.version,
                )

        after = aggregate.version if aggregate is not None else 0
        stored_events = await self._event_store.read_events(
            aggregate_id,
            after_sequence=after,
            max_sequence=max_version,
            max_timestamp=as_of,
        )
        if aggregate is None:
            if not stored_events:
                return None
            aggregate = self._aggregate_type(id=aggregate_id, clock=self._clock)

        self._fold(aggregate, stored_events)
        return aggregate

    async def catch_up(self, aggregate: T) -> int:
        """Replay events committed after ``aggregate.version``; return how many."""
        stored_events = await self._event_store.read_events(
            aggregate.id, after_sequence=aggregate.version
        )
        self._fold(aggregate, stored_events)
        return len(stored_events)

    def decode(self, stored: StoredEvent) -> DomainEvent:
        """Turn a stored event into a domain event, never failing.

        Members that do not parse are dropped; unknown or unusable types
        become an :class:`UnrecognizedEvent` placeholder.
        """
        envelope = stored.envelope()
        decoded = self._registry.decode(stored.event_type, {**stored.body, **envelope})
        if decoded.event is not None:
            if decoded.ignored_fields:
                logger.debug(
                    "Applied %s #%d of %s ignoring fields %s",
                    stored.event_type,
                    stored.sequence_number,
                    stored.aggregate_id,
                    list(decoded.ignored_fields),
                )
            return decoded.event

        if decoded.recognized:
            logger.warning(
                "Skipping %s #%d of %s: body could not be decoded",
                stored.event_type,
                stored.sequence_number,
                stored.aggregate_id,
            )
        else:
            logger.debug(
                "Skipping unrecognized event type %s #%d of %s",
                stored.event_type,
                stored.sequence_number,
                stored.aggregate_id,
            )
        return UnrecognizedEvent(
            original_type=stored.event_type, raw_body=dict(stored.body), **envelope
        )

    def _fold(self, aggregate: T, stored_events: list[StoredEvent]) -> None:
        for stored in stored_events:
            event = self.decode(stored)
            if isinstance(event, UnrecognizedEvent):
                aggregate.skip(event)
            else:
                aggregate.replay(event)
