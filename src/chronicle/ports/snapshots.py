"""ISnapshotStore — persistence protocol for aggregate snapshots."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from ..domain.aggregate import EventSourcedAggregate


class Snapshot(BaseModel):
    """A point-in-time materialization of an aggregate.

    ``version`` is the sequence number of the last event reflected in
    ``state``; ``etags`` are the tokens of every event folded in so far.
    Snapshots are superseded by newer ones and never mutated.
    """

    model_config = ConfigDict(frozen=True)

    aggregate_id: str
    version: int = Field(ge=1)
    aggregate_type_name: str
    state: dict[str, Any]
    etags: frozenset[str] = frozenset()
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def of(
        cls, aggregate: EventSourcedAggregate, created_at: datetime | None = None
    ) -> Snapshot:
        data: dict[str, Any] = {
            "aggregate_id": aggregate.id,
            "version": aggregate.version,
            "aggregate_type_name": aggregate.aggregate_type_name(),
            "state": aggregate.to_state(),
            "etags": aggregate.etags,
        }
        if created_at is not None:
            data["created_at"] = created_at
        return cls(**data)


@runtime_checkable
class ISnapshotStore(Protocol):
    """Port for persisting and retrieving aggregate snapshots.

    Usage::

        await snapshot_store.save_snapshot(Snapshot.of(order))
        snapshot = await snapshot_store.get_latest_snapshot(order.id, max_version=4)
    """

    async def get_latest_snapshot(
        self, aggregate_id: str, max_version: int | None = None
    ) -> Snapshot | None:
        """Return the highest-version snapshot, optionally at or below *max_version*."""
        ...

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        """Store *snapshot*; older snapshots stay readable for bounded loads."""
        ...


class ISnapshotStrategy(Protocol):
    """
    Interface for deciding when an aggregate should be snapshotted after save.
    """

    def should_snapshot(
        self, aggregate: EventSourcedAggregate, previous_version: int
    ) -> bool:
        """Decide after a save that moved *aggregate* past *previous_version*."""
        ...
