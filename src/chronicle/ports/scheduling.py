"""IScheduledCommandStore — durable scheduled commands and their selection."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from collections.abc import Iterable


class ScheduledCommandStatus(str, Enum):
    SCHEDULED = "scheduled"
    APPLIED = "applied"
    PERMANENTLY_FAILED = "permanently_failed"


class DeliveryPrecondition(BaseModel):
    """The stream ``aggregate_id`` must already contain ``sequence_number``."""

    model_config = ConfigDict(frozen=True)

    aggregate_id: str
    sequence_number: int = Field(ge=1)


class ScheduledCommand(BaseModel):
    """A durable intent to apply a command to an aggregate.

    ``sequence_number`` is reserved when the command is scheduled and is
    unique per aggregate. ``applied_time`` and ``final_attempt_time`` are
    mutually exclusive terminal markers; once one is set the record never
    changes again.
    """

    model_config = ConfigDict(frozen=True)

    aggregate_id: str
    aggregate_type: str
    sequence_number: int = Field(ge=1)
    command_name: str
    command_body: dict[str, Any] = Field(default_factory=dict)
    due_time: datetime | None = None
    delivery_precondition: DeliveryPrecondition | None = None
    applied_time: datetime | None = None
    final_attempt_time: datetime | None = None
    attempts: int = 0
    last_error: str | None = None
    created_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: str | None = None

    @property
    def status(self) -> ScheduledCommandStatus:
        if self.applied_time is not None:
            return ScheduledCommandStatus.APPLIED
        if self.final_attempt_time is not None:
            return ScheduledCommandStatus.PERMANENTLY_FAILED
        return ScheduledCommandStatus.SCHEDULED

    @property
    def is_resolved(self) -> bool:
        return self.status is not ScheduledCommandStatus.SCHEDULED

    def is_due(self, now: datetime) -> bool:
        return self.due_time is None or self.due_time <= now

    def sort_key(self) -> tuple[bool, datetime, int]:
        """Immediately eligible records first, then by due time and sequence."""
        due = self.due_time or datetime.min.replace(tzinfo=timezone.utc)
        return (self.due_time is not None, due, self.sequence_number)


@dataclass(frozen=True, slots=True)
class CommandSelector:
    """Filter over currently scheduled records.

    Usage::

        selector = CommandSelector.due(clock.now()).for_aggregate("order-1")
    """

    due_before: datetime | None = None
    aggregate_id: str | None = None
    aggregate_type: str | None = None
    limit: int | None = None

    @classmethod
    def due(cls, due_before: datetime | None) -> CommandSelector:
        return cls(due_before=due_before)

    def for_aggregate(self, aggregate_id: str) -> CommandSelector:
        return dataclasses.replace(self, aggregate_id=aggregate_id)

    def of_type(self, aggregate_type: str) -> CommandSelector:
        return dataclasses.replace(self, aggregate_type=aggregate_type)

    def take(self, limit: int) -> CommandSelector:
        return dataclasses.replace(self, limit=limit)

    def matches(self, record: ScheduledCommand) -> bool:
        if record.is_resolved:
            return False
        if self.aggregate_id is not None and record.aggregate_id != self.aggregate_id:
            return False
        if (
            self.aggregate_type is not None
            and record.aggregate_type != self.aggregate_type
        ):
            return False
        return self.due_before is None or record.is_due(self.due_before)

    def select(self, records: Iterable[ScheduledCommand]) -> list[ScheduledCommand]:
        """Apply this selector to *records*, ordered and limited."""
        selected = sorted(
            (r for r in records if self.matches(r)), key=ScheduledCommand.sort_key
        )
        if self.limit is not None:
            selected = selected[: self.limit]
        return selected


@runtime_checkable
class IScheduledCommandStore(Protocol):
    """Port for scheduled-command records keyed by (aggregate_id, sequence_number).

    Terminal transitions and attempt bookkeeping are conditional: they apply
    only while neither ``applied_time`` nor ``final_attempt_time`` is set and
    report whether they won.
    """

    async def add(self, record: ScheduledCommand) -> None:
        """Store a new record.

        Raises:
            SequenceConflictError: the (aggregate_id, sequence_number) is taken.
        """
        ...

    async def get(
        self, aggregate_id: str, sequence_number: int
    ) -> ScheduledCommand | None:
        ...

    async def query(self, selector: CommandSelector) -> list[ScheduledCommand]:
        """Scheduled records matching *selector*, by due time then sequence."""
        ...

    async def highest_sequence_number(self, aggregate_id: str) -> int:
        """Highest reserved sequence number for the aggregate, or ``0``."""
        ...

    async def record_attempt(
        self,
        aggregate_id: str,
        sequence_number: int,
        *,
        error: str,
        next_due_time: datetime | None = None,
    ) -> ScheduledCommand | None:
        """Count a failed attempt, keeping the record scheduled.

        Returns the updated record, or ``None`` when it was already resolved.
        """
        ...

    async def mark_applied(
        self, aggregate_id: str, sequence_number: int, applied_time: datetime
    ) -> bool:
        ...

    async def mark_failed(
        self,
        aggregate_id: str,
        sequence_number: int,
        final_attempt_time: datetime,
        error: str,
    ) -> bool:
        ...

    async def find_resolved(
        self, aggregate_id: str, sequence_number: int
    ) -> ScheduledCommand | None:
        """The record if it carries ``applied_time`` or ``final_attempt_time``."""
        ...


@runtime_checkable
class ICommandDispatcher(Protocol):
    """Hands a freshly scheduled record to a delivery mechanism (e.g. a queue)."""

    async def dispatch(self, record: ScheduledCommand) -> None:
        ...
