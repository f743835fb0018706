from .aggregate import EventSourcedAggregate
from .commands import AggregateCommand, CommandRegistry
from .event_registry import DecodedEvent, EventTypeRegistry
from .events import DomainEvent, UnrecognizedEvent
from .validation import ValidationResult

__all__ = [
    "AggregateCommand",
    "CommandRegistry",
    "DecodedEvent",
    "DomainEvent",
    "EventSourcedAggregate",
    "EventTypeRegistry",
    "UnrecognizedEvent",
    "ValidationResult",
]
