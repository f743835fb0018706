"""In-memory scheduled-command store for testing."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from chronicle.exceptions import SequenceConflictError
from chronicle.ports.scheduling import IScheduledCommandStore, ScheduledCommand

if TYPE_CHECKING:
    from datetime import datetime

    from chronicle.ports.scheduling import CommandSelector


class InMemoryScheduledCommandStore(IScheduledCommandStore):
    """
    Dict-backed :class:`IScheduledCommandStore` for unit / integration tests.

    Conditional updates never await between the check and the write, which
    keeps them atomic on a single event loop.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, int], ScheduledCommand] = {}

    async def add(self, record: ScheduledCommand) -> None:
        key = (record.aggregate_id, record.sequence_number)
        if key in self._records:
            raise SequenceConflictError(
                f"Sequence number {record.sequence_number} is already scheduled "
                f"for {record.aggregate_type} {record.aggregate_id!r}"
            )
        self._records[key] = record

    async def get(
        self, aggregate_id: str, sequence_number: int
    ) -> ScheduledCommand | None:
        return self._records.get((aggregate_id, sequence_number))

    async def query(self, selector: CommandSelector) -> list[ScheduledCommand]:
        return selector.select(self._records.values())

    async def highest_sequence_number(self, aggregate_id: str) -> int:
        return max(
            (seq for agg, seq in self._records if agg == aggregate_id), default=0
        )

    async def record_attempt(
        self,
        aggregate_id: str,
        sequence_number: int,
        *,
        error: str,
        next_due_time: datetime | None = None,
    ) -> ScheduledCommand | None:
        record = self._records.get((aggregate_id, sequence_number))
        if record is None or record.is_resolved:
            return None
        update: dict[str, Any] = {"attempts": record.attempts + 1, "last_error": error}
        if next_due_time is not None:
            update["due_time"] = next_due_time
        return self._replace(record, update)

    async def mark_applied(
        self, aggregate_id: str, sequence_number: int, applied_time: datetime
    ) -> bool:
        record = self._records.get((aggregate_id, sequence_number))
        if record is None or record.is_resolved:
            return False
        self._replace(
            record, {"applied_time": applied_time, "attempts": record.attempts + 1}
        )
        return True

    async def mark_failed(
        self,
        aggregate_id: str,
        sequence_number: int,
        final_attempt_time: datetime,
        error: str,
    ) -> bool:
        record = self._records.get((aggregate_id, sequence_number))
        if record is None or record.is_resolved:
            return False
        self._replace(
            record, {"final_attempt_time": final_attempt_time, "last_error": error}
        )
        return True

    async def find_resolved(
        self, aggregate_id: str, sequence_number: int
    ) -> ScheduledCommand | None:
        record = self._records.get((aggregate_id, sequence_number))
        if record is not None and record.is_resolved:
            return record
        return None

    def _replace(
        self, record: ScheduledCommand, update: dict[str, Any]
    ) -> ScheduledCommand:
        updated = record.model_copy(update=update)
        self._records[(record.aggregate_id, record.sequence_number)] = updated
        return updated

    # --- Test helpers ---

    def all(self) -> list[ScheduledCommand]:
        return list(self._records.values())

    def clear(self) -> None:
        self._records.clear()
