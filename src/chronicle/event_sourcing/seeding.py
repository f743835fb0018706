"""Helpers for seeding an event store with pre-existing streams."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import IO, TYPE_CHECKING, Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..domain.events import DomainEvent
from ..exceptions import DeserializationError
from ..ports.event_store import StoredEvent

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ..ports.event_store import IEventStore

logger = logging.getLogger("chronicle.event_sourcing")


class SeedEvent(BaseModel):
    """One entry of a JSON seed file."""

    aggregate_id: str
    sequence_number: int = Field(ge=1)
    event_type: str
    body: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    aggregate_type: str = ""
    actor: str | None = None
    etag: str | None = None

    def to_stored(self) -> StoredEvent:
        return StoredEvent(
            aggregate_id=self.aggregate_id,
            sequence_number=self.sequence_number,
            event_type=self.event_type,
            body=self.body,
            timestamp=self.timestamp,
            aggregate_type=self.aggregate_type,
            actor=self.actor,
            etag=self.etag,
        )


_seed_adapter = TypeAdapter(list[SeedEvent])


async def seed_events(
    store: IEventStore,
    events: Iterable[StoredEvent | DomainEvent],
    *,
    aggregate_type: str = "",
) -> int:
    """Append *events* in one batch and return how many were written.

    Domain events must already carry their aggregate id and sequence number.
    """
    stored = [
        e
        if isinstance(e, StoredEvent)
        else StoredEvent.from_domain_event(e, aggregate_type)
        for e in events
    ]
    await store.append(stored)
    logger.info("Seeded %d event(s)", len(stored))
    return len(stored)


async def seed_from_json(store: IEventStore, source: str | IO[str]) -> int:
    """Seed from a JSON array of events (a string or a readable text file).

    Raises:
        DeserializationError: the document is not a valid list of events.
    """
    raw = source if isinstance(source, str) else source.read()
    try:
        entries = _seed_adapter.validate_python(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise DeserializationError(f"Invalid event seed document: {e}") from e
    return await seed_events(store, [entry.to_stored() for entry in entries])
