"""InMemoryEventStore — dict-backed fake for unit tests."""

from __future__ import annotations

import asyncio
import bisect
from typing import TYPE_CHECKING

from chronicle.correlation import get_correlation_id
from chronicle.exceptions import SequenceConflictError
from chronicle.instrumentation import get_hook_registry
from chronicle.ports.event_store import IEventStore, StoredEvent

if TYPE_CHECKING:
    from datetime import datetime


class InMemoryEventStore(IEventStore):
    """In-memory implementation of ``IEventStore``.

    Streams are kept sorted by sequence number. An ``asyncio.Lock`` makes
    "insert if absent" atomic across concurrent appends.
    """

    def __init__(self) -> None:
        self._streams: dict[str, list[StoredEvent]] = {}
        self._lock = asyncio.Lock()

    async def append(self, events: list[StoredEvent]) -> None:
        if not events:
            return
        first = events[0]
        await get_hook_registry().execute_all(
            f"event_store.append.{first.aggregate_type or 'unknown'}",
            {
                "aggregate.type": first.aggregate_type,
                "aggregate.id": first.aggregate_id,
                "event_count": len(events),
                "correlation_id": first.correlation_id or get_correlation_id(),
            },
            lambda: self._append_internal(events),
        )

    async def _append_internal(self, events: list[StoredEvent]) -> None:
        async with self._lock:
            claimed: dict[tuple[str, int], StoredEvent] = {}
            for event in events:
                key = (event.aggregate_id, event.sequence_number)
                committed = claimed.get(key) or self._find(*key)
                if committed is not None:
                    raise SequenceConflictError(committed=committed, attempted=event)
                claimed[key] = event
            for event in events:
                stream = self._streams.setdefault(event.aggregate_id, [])
                bisect.insort(stream, event, key=lambda e: e.sequence_number)

    def _find(self, aggregate_id: str, sequence_number: int) -> StoredEvent | None:
        for event in self._streams.get(aggregate_id, ()):
            if event.sequence_number == sequence_number:
                return event
        return None

    async def read_events(
        self,
        aggregate_id: str,
        *,
        after_sequence: int = 0,
        max_sequence: int | None = None,
        max_timestamp: datetime | None = None,
    ) -> list[StoredEvent]:
        return [
            e
            for e in self._streams.get(aggregate_id, ())
            if e.sequence_number > after_sequence
            and (max_sequence is None or e.sequence_number <= max_sequence)
            and (max_timestamp is None or e.timestamp <= max_timestamp)
        ]

    async def get_event(
        self, aggregate_id: str, sequence_number: int
    ) -> StoredEvent | None:
        return self._find(aggregate_id, sequence_number)

    async def latest_sequence_number(self, aggregate_id: str) -> int:
        stream = self._streams.get(aggregate_id)
        return stream[-1].sequence_number if stream else 0

    # ── Test helpers ─────────────────────────────────────────────

    def clear(self) -> None:
        self._streams.clear()

    def __len__(self) -> int:
        return sum(len(stream) for stream in self._streams.values())
