"""InMemorySnapshotStore — in-memory snapshot store for tests."""

from __future__ import annotations

from chronicle.ports.snapshots import ISnapshotStore, Snapshot


class InMemorySnapshotStore(ISnapshotStore):
    """In-memory implementation of ISnapshotStore for unit tests.

    Keeps every snapshot per aggregate, so version-bounded loads can still
    pick an older one.
    """

    def __init__(self) -> None:
        self._store: dict[str, list[Snapshot]] = {}

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        snapshots = self._store.setdefault(snapshot.aggregate_id, [])
        if any(s.version == snapshot.version for s in snapshots):
            return
        snapshots.append(snapshot)
        snapshots.sort(key=lambda s: s.version)

    async def get_latest_snapshot(
        self, aggregate_id: str, max_version: int | None = None
    ) -> Snapshot | None:
        candidates = [
            s
            for s in self._store.get(aggregate_id, ())
            if max_version is None or s.version <= max_version
        ]
        return candidates[-1] if candidates else None

    def clear(self) -> None:
        """Remove all snapshots (test helper)."""
        self._store.clear()
