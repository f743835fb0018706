from chronicle.ports.event_bus import EventHandler, IEventBus
from chronicle.ports.event_store import IEventStore, StoredEvent
from chronicle.ports.messaging import IQueueMessage, IQueueTransport
from chronicle.ports.scheduling import (
    CommandSelector,
    DeliveryPrecondition,
    ICommandDispatcher,
    IScheduledCommandStore,
    ScheduledCommand,
    ScheduledCommandStatus,
)
from chronicle.ports.snapshots import ISnapshotStore, ISnapshotStrategy, Snapshot

__all__ = [
    "CommandSelector",
    "DeliveryPrecondition",
    "EventHandler",
    "ICommandDispatcher",
    "IEventBus",
    "IEventStore",
    "IQueueMessage",
    "IQueueTransport",
    "IScheduledCommandStore",
    "ISnapshotStore",
    "ISnapshotStrategy",
    "ScheduledCommand",
    "ScheduledCommandStatus",
    "Snapshot",
    "StoredEvent",
]
