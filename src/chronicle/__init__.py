"""chronicle — event-sourced aggregates with durable scheduled commands.

Core dependencies are pydantic and SQLAlchemy; the SQS transport is an
optional extra.
"""

from __future__ import annotations

# ── Adapters ────────────────────────────────────────────────────
from .adapters.memory import (
    InMemoryEventBus,
    InMemoryEventStore,
    InMemoryScheduledCommandStore,
    InMemorySnapshotStore,
)
from .clock import Clock, SystemClock, VirtualClock
from .correlation import (
    correlation_scope,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
)

# ── Domain ───────────────────────────────────────────────────────
from .domain import (
    AggregateCommand,
    CommandRegistry,
    DomainEvent,
    EventSourcedAggregate,
    EventTypeRegistry,
    UnrecognizedEvent,
    ValidationResult,
)

# ── Event sourcing ───────────────────────────────────────────────
from .event_sourcing import (
    AggregateRehydrator,
    EventSourcedRepository,
    EveryNEventsStrategy,
    SaveResult,
    seed_events,
    seed_from_json,
)
from .exceptions import (
    AggregateNotFoundError,
    ChronicleError,
    CommandValidationError,
    ConcurrencyError,
    DeserializationError,
    DomainError,
    EventStoreError,
    InfrastructureError,
    InvalidOperationError,
    SequenceConflictError,
    TransportDeliveryError,
    UnknownCommandError,
)
from .instrumentation import HookRegistry, get_hook_registry, set_hook_registry

# ── Messaging ────────────────────────────────────────────────────
from .messaging import (
    EnvelopeSerializer,
    InMemoryQueue,
    QueueCommandDispatcher,
    ReceiverSettings,
    ScheduledCommandQueueReceiver,
)

# ── Ports ────────────────────────────────────────────────────────
from .ports import (
    CommandSelector,
    DeliveryPrecondition,
    IEventBus,
    IEventStore,
    IQueueMessage,
    IQueueTransport,
    IScheduledCommandStore,
    ISnapshotStore,
    ScheduledCommand,
    ScheduledCommandStatus,
    Snapshot,
    StoredEvent,
)

# ── Scheduling ───────────────────────────────────────────────────
from .scheduling import (
    CommandScheduler,
    CommandTriggerEngine,
    SchedulingPolicy,
    TriggerResult,
    TriggerWorker,
)

__version__ = "0.1.0"

__all__ = [
    "AggregateCommand",
    "AggregateNotFoundError",
    "AggregateRehydrator",
    "ChronicleError",
    "Clock",
    "CommandRegistry",
    "CommandScheduler",
    "CommandSelector",
    "CommandTriggerEngine",
    "CommandValidationError",
    "ConcurrencyError",
    "DeliveryPrecondition",
    "DeserializationError",
    "DomainError",
    "DomainEvent",
    "EnvelopeSerializer",
    "EventSourcedAggregate",
    "EventSourcedRepository",
    "EventStoreError",
    "EventTypeRegistry",
    "EveryNEventsStrategy",
    "HookRegistry",
    "IEventBus",
    "IEventStore",
    "IQueueMessage",
    "IQueueTransport",
    "IScheduledCommandStore",
    "ISnapshotStore",
    "InMemoryEventBus",
    "InMemoryEventStore",
    "InMemoryQueue",
    "InMemoryScheduledCommandStore",
    "InMemorySnapshotStore",
    "InfrastructureError",
    "InvalidOperationError",
    "QueueCommandDispatcher",
    "ReceiverSettings",
    "SaveResult",
    "ScheduledCommand",
    "ScheduledCommandQueueReceiver",
    "ScheduledCommandStatus",
    "SchedulingPolicy",
    "SequenceConflictError",
    "Snapshot",
    "StoredEvent",
    "SystemClock",
    "TransportDeliveryError",
    "TriggerResult",
    "TriggerWorker",
    "UnknownCommandError",
    "UnrecognizedEvent",
    "ValidationResult",
    "VirtualClock",
    "__version__",
    "correlation_scope",
    "generate_correlation_id",
    "get_correlation_id",
    "get_hook_registry",
    "set_correlation_id",
    "set_hook_registry",
]
