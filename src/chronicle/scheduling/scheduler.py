"""CommandScheduler — persists scheduled commands and hands them to a dispatcher."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..clock import SystemClock, ensure_utc
from ..exceptions import SequenceConflictError
from ..ports.scheduling import ScheduledCommand

if TYPE_CHECKING:
    from datetime import datetime

    from ..clock import Clock
    from ..domain.aggregate import EventSourcedAggregate
    from ..domain.commands import AggregateCommand
    from ..ports.event_store import IEventStore
    from ..ports.scheduling import (
        DeliveryPrecondition,
        ICommandDispatcher,
        IScheduledCommandStore,
    )

logger = logging.getLogger("chronicle.scheduling")


class CommandScheduler:
    """
    Service to schedule commands against aggregates.

    Each record reserves the next free sequence number for its aggregate,
    past both the committed stream and every earlier scheduled command.
    Commands without an etag get ``"<aggregate_id>:<sequence_number>"``, so
    the events they record mark the aggregate as having seen them. The
    record is durable before any dispatcher sees it, so a lost dispatch is
    recovered by the next trigger pass.

    Usage::

        scheduler = CommandScheduler(store, event_store, dispatcher=queue_dispatcher)
        await scheduler.schedule(
            Order, "order-1", Cancel(), due_time=clock.now() + timedelta(days=1)
        )
    """

    max_reservation_attempts = 3

    def __init__(
        self,
        store: IScheduledCommandStore,
        event_store: IEventStore,
        *,
        clock: Clock | None = None,
        dispatcher: ICommandDispatcher | None = None,
    ) -> None:
        self._store = store
        self._event_store = event_store
        self._clock = clock or SystemClock()
        self._dispatcher = dispatcher

    async def schedule(
        self,
        aggregate_type: type[EventSourcedAggregate] | str,
        aggregate_id: str,
        command: AggregateCommand,
        *,
        due_time: datetime | None = None,
        precondition: DeliveryPrecondition | None = None,
    ) -> ScheduledCommand:
        """Persist *command* for later application to *aggregate_id*.

        Raises:
            SequenceConflictError: concurrent schedulers kept taking the
                reserved sequence number.
        """
        type_name = (
            aggregate_type
            if isinstance(aggregate_type, str)
            else aggregate_type.aggregate_type_name()
        )
        for attempt in range(1, self.max_reservation_attempts + 1):
            sequence_number = await self._reserve(aggregate_id)
            stamped = _with_etag(command, aggregate_id, sequence_number)
            record = ScheduledCommand(
                aggregate_id=aggregate_id,
                aggregate_type=type_name,
                sequence_number=sequence_number,
                command_name=command.command_name(),
                command_body=stamped.body(),
                due_time=ensure_utc(due_time) if due_time is not None else None,
                delivery_precondition=precondition,
                created_time=self._clock.now(),
                correlation_id=command.correlation_id,
            )
            try:
                await self._store.add(record)
                break
            except SequenceConflictError:
                if attempt == self.max_reservation_attempts:
                    raise
                logger.debug(
                    "Sequence %d for %s was taken, reserving again",
                    record.sequence_number,
                    aggregate_id,
                )

        logger.info(
            "Scheduled %s for %s %s (#%d, due %s)",
            record.command_name,
            type_name,
            aggregate_id,
            record.sequence_number,
            record.due_time.isoformat() if record.due_time else "now",
        )
        await self._dispatch(record)
        return record

    async def _reserve(self, aggregate_id: str) -> int:
        stream_version = await self._event_store.latest_sequence_number(aggregate_id)
        highest_scheduled = await self._store.highest_sequence_number(aggregate_id)
        return max(stream_version, highest_scheduled) + 1

    async def _dispatch(self, record: ScheduledCommand) -> None:
        if self._dispatcher is None:
            return
        try:
            await self._dispatcher.dispatch(record)
        except Exception:
            logger.exception(
                "Dispatch of scheduled %s #%d for %s failed; "
                "it stays scheduled for the next trigger pass",
                record.command_name,
                record.sequence_number,
                record.aggregate_id,
            )


def command_etag(aggregate_id: str, sequence_number: int) -> str:
    """The etag a scheduled command stamps on the events it records."""
    return f"{aggregate_id}:{sequence_number}"


def _with_etag(
    command: AggregateCommand, aggregate_id: str, sequence_number: int
) -> AggregateCommand:
    if command.etag is not None:
        return command
    return command.model_copy(
        update={"etag": command_etag(aggregate_id, sequence_number)}
    )
