"""Snapshot strategies evaluated by the repository after a successful save."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..ports.snapshots import ISnapshotStrategy

if TYPE_CHECKING:
    from ..domain.aggregate import EventSourcedAggregate


class EveryNEventsStrategy(ISnapshotStrategy):
    """
    Snapshots an aggregate whenever a save carries its version across a multiple of N.
    """

    def __init__(self, n: int = 50) -> None:
        if n < 1:
            raise ValueError("n must be >= 1")
        self.n = n

    def should_snapshot(
        self, aggregate: EventSourcedAggregate, previous_version: int
    ) -> bool:
        return aggregate.version // self.n > previous_version // self.n
