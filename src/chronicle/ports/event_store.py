"""IEventStore protocol + StoredEvent dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import uuid4

if TYPE_CHECKING:
    from ..domain.events import DomainEvent


def default_body_factory() -> dict[str, Any]:
    """Factory for mutable default dict in dataclass fields."""
    return {}


@dataclass(frozen=True)
class StoredEvent:
    """Persistent representation of a domain event.

    ``(aggregate_id, sequence_number)`` is unique within a store; sequence
    numbers start at 1 and have no gaps in a committed stream. ``body`` is the
    JSON-ready payload, decoded leniently on the way back.
    """

    aggregate_id: str
    sequence_number: int
    event_type: str
    body: dict[str, Any] = field(default_factory=default_body_factory)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    aggregate_type: str = ""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    actor: str | None = None
    etag: str | None = None
    correlation_id: str | None = None

    @classmethod
    def from_domain_event(
        cls, event: DomainEvent, aggregate_type: str = ""
    ) -> StoredEvent:
        return cls(
            aggregate_id=event.aggregate_id,
            sequence_number=event.sequence_number,
            event_type=event.event_type,
            body=event.body(),
            timestamp=event.timestamp,
            aggregate_type=aggregate_type,
            event_id=event.event_id,
            actor=event.actor,
            etag=event.etag,
            correlation_id=event.correlation_id,
        )

    def envelope(self) -> dict[str, Any]:
        """The stored columns that a decoded event carries besides its body."""
        return {
            "event_id": self.event_id,
            "aggregate_id": self.aggregate_id,
            "sequence_number": self.sequence_number,
            "timestamp": self.timestamp,
            "actor": self.actor,
            "etag": self.etag,
            "correlation_id": self.correlation_id,
        }


@runtime_checkable
class IEventStore(Protocol):
    """Protocol for the append-only event log.

    The store alone decides who committed first: ``append`` must insert each
    event only if its ``(aggregate_id, sequence_number)`` is absent.
    """

    async def append(self, events: list[StoredEvent]) -> None:
        """Append *events* atomically.

        Raises:
            SequenceConflictError: a sequence number is already taken; none of
                the events are stored.
        """
        ...

    async def read_events(
        self,
        aggregate_id: str,
        *,
        after_sequence: int = 0,
        max_sequence: int | None = None,
        max_timestamp: datetime | None = None,
    ) -> list[StoredEvent]:
        """Return the stream's events in ascending sequence order.

        Args:
            after_sequence: Exclusive lower bound.
            max_sequence: Inclusive upper bound on sequence number.
            max_timestamp: Inclusive upper bound on timestamp.
        """
        ...

    async def get_event(
        self, aggregate_id: str, sequence_number: int
    ) -> StoredEvent | None:
        """Point lookup of one event."""
        ...

    async def latest_sequence_number(self, aggregate_id: str) -> int:
        """Highest committed sequence number, or ``0`` for an empty stream."""
        ...
