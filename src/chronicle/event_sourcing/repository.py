"""EventSourcedRepository — retrieval and persistence for event-sourced aggregates."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar, cast

from ..clock import SystemClock
from ..correlation import get_correlation_id
from ..domain.aggregate import EventSourcedAggregate
from ..exceptions import ConcurrencyError, InvalidOperationError, SequenceConflictError
from ..instrumentation import get_hook_registry
from ..ports.event_store import StoredEvent
from ..ports.snapshots import Snapshot
from .rehydrator import AggregateRehydrator

if TYPE_CHECKING:
    from datetime import datetime

    from ..clock import Clock
    from ..domain.events import DomainEvent
    from ..ports.event_bus import IEventBus
    from ..ports.event_store import IEventStore
    from ..ports.snapshots import ISnapshotStore, ISnapshotStrategy

logger = logging.getLogger("chronicle.event_sourcing")

T = TypeVar("T", bound=EventSourcedAggregate)

PENDING_EVENTS_MESSAGE = "Aggregates having pending events cannot be updated."


@dataclass(frozen=True)
class SaveResult:
    """Outcome of :meth:`EventSourcedRepository.save`.

    - ``success``: the pending events are durably committed.
    - ``events``: the committed events, in sequence order.
    - ``error``: the conflict that prevented the commit.
    - ``handler_errors``: exceptions raised by event-bus subscribers after
      the commit; they do not undo it.
    """

    success: bool
    events: tuple[DomainEvent, ...] = ()
    error: ConcurrencyError | None = None
    handler_errors: tuple[Exception, ...] = ()

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def __bool__(self) -> bool:
        return self.success


class EventSourcedRepository(Generic[T]):
    """Repository for event-sourced aggregates.

    - **Retrieve:** latest, exact version or as-of a point in time, through
      :class:`AggregateRehydrator` (snapshot + events).
    - **Save:** appends pending events with the sequence numbers they carry;
      the event store decides who committed first. Committed events are then
      published in order.

    While a save publishes, the saved instance is held in an in-flight cache
    so subscribers calling :meth:`get_aggregate` see it without a reload.

    Usage::

        repository = EventSourcedRepository(Order, event_store, event_bus=bus)
        order = await repository.get_latest("order-1")
        order.apply(ChangeCustomerInfo(customer_name="Alice"))
        (await repository.save(order)).raise_for_error()
    """

    def __init__(
        self,
        aggregate_type: type[T],
        event_store: IEventStore,
        *,
        snapshot_store: ISnapshotStore | None = None,
        event_bus: IEventBus | None = None,
        clock: Clock | None = None,
        snapshot_strategy: ISnapshotStrategy | None = None,
    ) -> None:
        self._aggregate_type = aggregate_type
        self._event_store = event_store
        self._snapshot_store = snapshot_store
        self._event_bus = event_bus
        self._clock = clock or SystemClock()
        self._snapshot_strategy = snapshot_strategy
        self._aggregate_type_name = aggregate_type.aggregate_type_name()
        self._rehydrator = AggregateRehydrator(
            aggregate_type,
            event_store,
            snapshot_store=snapshot_store,
            clock=self._clock,
        )
        self._in_flight: dict[str, T] = {}

    @property
    def aggregate_type(self) -> type[T]:
        return self._aggregate_type

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def event_store(self) -> IEventStore:
        return self._event_store

    def create(self, aggregate_id: str) -> T:
        """A fresh, empty aggregate bound to this repository's clock."""
        return self._aggregate_type(id=aggregate_id, clock=self._clock)

    # ── Retrieval ────────────────────────────────────────────────

    async def get_latest(self, aggregate_id: str) -> T | None:
        return await self._load(aggregate_id)

    async def get_version(self, aggregate_id: str, version: int) -> T | None:
        """Rehydrate strictly through *version*.

        A snapshot at or below *version* seeds the load, so ``event_history``
        then holds only the events after that snapshot; state and
        ``version`` are the same either way.
        """
        return await self._load(aggregate_id, max_version=version)

    async def get_as_of_date(self, aggregate_id: str, timestamp: datetime) -> T | None:
        """Rehydrate from the events stamped at or before *timestamp*."""
        return await self._load(aggregate_id, as_of=timestamp)

    async def get_aggregate(self, aggregate_id: str) -> T | None:
        """The instance being saved right now, else the latest committed state."""
        in_flight = self._in_flight.get(aggregate_id)
        if in_flight is not None:
            return in_flight
        return await self.get_latest(aggregate_id)

    async def _load(
        self,
        aggregate_id: str,
        *,
        max_version: int | None = None,
        as_of: datetime | None = None,
    ) -> T | None:
        registry = get_hook_registry()
        return cast(
            "T | None",
            await registry.execute_all(
                f"event_sourcing.load.{self._aggregate_type_name}",
                {
                    "aggregate.type": self._aggregate_type_name,
                    "aggregate.id": aggregate_id,
                    "max_version": max_version,
                    "as_of": as_of,
                    "correlation_id": get_correlation_id(),
                },
                lambda: self._rehydrator.load(
                    aggregate_id, max_version=max_version, as_of=as_of
                ),
            ),
        )

    # ── Persistence ──────────────────────────────────────────────

    async def save(self, aggregate: T) -> SaveResult:
        """Commit *aggregate*'s pending events, then publish them.

        A sequence collision yields ``SaveResult(success=False)`` carrying a
        :class:`ConcurrencyError`; nothing is published and the aggregate
        keeps its pending events. Storage failures other than conflicts raise.
        """
        registry = get_hook_registry()
        return cast(
            "SaveResult",
            await registry.execute_all(
                f"event_sourcing.save.{self._aggregate_type_name}",
                {
                    "aggregate.type": self._aggregate_type_name,
                    "aggregate.id": aggregate.id,
                    "event_count": len(aggregate.pending_events),
                    "correlation_id": get_correlation_id(),
                },
                lambda: self._save_internal(aggregate),
            ),
        )

    async def _save_internal(self, aggregate: T) -> SaveResult:
        pending = aggregate.pending_events
        if not pending:
            return SaveResult(success=True)

        previous_version = pending[0].sequence_number - 1
        stored = [
            StoredEvent.from_domain_event(event, self._aggregate_type_name)
            for event in pending
        ]
        try:
            await self._event_store.append(stored)
        except SequenceConflictError as e:
            logger.warning(
                "Save of %s %s rejected: %s", self._aggregate_type_name, aggregate.id, e
            )
            return SaveResult(success=False, error=e)

        committed = aggregate.mark_pending_committed()
        logger.debug(
            "Committed %d event(s) for %s %s (version %d)",
            len(committed),
            self._aggregate_type_name,
            aggregate.id,
            aggregate.version,
        )

        handler_errors = await self._publish(aggregate, committed)
        await self._maybe_snapshot(aggregate, previous_version)
        return SaveResult(
            success=True, events=tuple(committed), handler_errors=handler_errors
        )

    async def _publish(
        self, aggregate: T, committed: list[DomainEvent]
    ) -> tuple[Exception, ...]:
        if self._event_bus is None:
            return ()
        errors: list[Exception] = []
        self._in_flight[aggregate.id] = aggregate
        try:
            for event in committed:
                try:
                    await self._event_bus.publish([event])
                except Exception as e:  # noqa: BLE001
                    logger.exception(
                        "Subscriber failed on %s #%d of %s",
                        event.event_type,
                        event.sequence_number,
                        aggregate.id,
                    )
                    errors.append(e)
        finally:
            self._in_flight.pop(aggregate.id, None)
        return tuple(errors)

    async def refresh(self, aggregate: T) -> T:
        """Apply events committed elsewhere since ``aggregate.version``.

        Raises:
            InvalidOperationError: *aggregate* holds unsaved events.
        """
        if aggregate.pending_events:
            raise InvalidOperationError(PENDING_EVENTS_MESSAGE)
        applied = await self._rehydrator.catch_up(aggregate)
        if applied:
            logger.debug(
                "Refreshed %s %s with %d event(s)",
                self._aggregate_type_name,
                aggregate.id,
                applied,
            )
        return aggregate

    # ── Snapshots ────────────────────────────────────────────────

    async def snapshot(self, aggregate: T) -> Snapshot:
        """Write a snapshot of *aggregate*'s committed state."""
        if self._snapshot_store is None:
            raise InvalidOperationError("No snapshot store is configured.")
        if aggregate.pending_events:
            raise InvalidOperationError(
                "Aggregates having pending events cannot be snapshotted."
            )
        if aggregate.version < 1:
            raise InvalidOperationError("Aggregates without events cannot be snapshotted.")
        snapshot = Snapshot.of(aggregate, created_at=self._clock.now())
        await self._snapshot_store.save_snapshot(snapshot)
        logger.debug(
            "Snapshot of %s %s at version %d",
            self._aggregate_type_name,
            aggregate.id,
            snapshot.version,
        )
        return snapshot

    async def _maybe_snapshot(self, aggregate: T, previous_version: int) -> None:
        if self._snapshot_store is None or self._snapshot_strategy is None:
            return
        if self._snapshot_strategy.should_snapshot(aggregate, previous_version):
            await self.snapshot(aggregate)
