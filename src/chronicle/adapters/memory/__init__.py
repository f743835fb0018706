from .event_bus import InMemoryEventBus
from .event_store import InMemoryEventStore
from .scheduling import InMemoryScheduledCommandStore
from .snapshot_store import InMemorySnapshotStore

__all__ = [
    "InMemoryEventBus",
    "InMemoryEventStore",
    "InMemoryScheduledCommandStore",
    "InMemorySnapshotStore",
]
