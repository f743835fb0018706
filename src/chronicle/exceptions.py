"""Domain and infrastructure exceptions for chronicle."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .domain.validation import ValidationResult
    from .ports.event_store import StoredEvent


class ChronicleError(Exception):
    """Root exception for the entire chronicle toolkit."""


# ── Domain ───────────────────────────────────────────────────────────


class DomainError(ChronicleError):
    """Base class for all domain-related errors.

    Raise it (or a subclass) from event-producing aggregate methods when a
    business rule rejects the requested change.
    """


class CommandValidationError(DomainError):
    """Raised when a command fails its validation rules against an aggregate.

    Carries the structured :class:`ValidationResult`.
    """

    def __init__(self, command_name: str, result: ValidationResult) -> None:
        self.command_name = command_name
        self.result = result
        super().__init__(f"{command_name} is invalid: {' '.join(result.messages)}")


class AggregateNotFoundError(DomainError):
    """Raised when a command targets an aggregate that has no stream."""

    def __init__(self, aggregate_type: str, aggregate_id: object) -> None:
        self.aggregate_type = aggregate_type
        self.aggregate_id = aggregate_id
        super().__init__(f"{aggregate_type} with id={aggregate_id!r} not found")


class InvalidOperationError(ChronicleError):
    """Raised when an operation is called on an object in the wrong state.

    E.g. refreshing an aggregate that still holds unsaved events.
    """


# ── Concurrency ──────────────────────────────────────────────────────


class ConcurrencyError(ChronicleError):
    """Two writers raced on the same (aggregate_id, sequence_number).

    ``committed`` is the event that won, ``attempted`` the one that lost.
    Never retried automatically: the caller must reload and reapply.
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        committed: StoredEvent | None = None,
        attempted: StoredEvent | None = None,
    ) -> None:
        self.committed = committed
        self.attempted = attempted
        if message is None and attempted is not None:
            message = _describe_conflict(committed, attempted)
        super().__init__(message or "Concurrency conflict")


class SequenceConflictError(ConcurrencyError):
    """Raised by an event store when a sequence number is already taken."""


def _describe_event(event: StoredEvent) -> str:
    body = json.dumps(event.body, sort_keys=True, default=str)
    actor = f" by {event.actor}" if event.actor else ""
    return f"{event.event_type}{actor} {body}"


def _describe_conflict(
    committed: StoredEvent | None, attempted: StoredEvent
) -> str:
    where = (
        f"sequence number {attempted.sequence_number} of "
        f"{attempted.aggregate_type or 'aggregate'} {attempted.aggregate_id!r}"
    )
    if committed is None:
        return f"Concurrency conflict at {where}: attempted {_describe_event(attempted)}"
    return (
        f"Concurrency conflict at {where}: "
        f"already committed {_describe_event(committed)}; "
        f"attempted {_describe_event(attempted)}"
    )


# ── Serialization ────────────────────────────────────────────────────


class DeserializationError(ChronicleError):
    """Raised when a stored body or an inbound message cannot be decoded."""


class UnknownCommandError(DeserializationError):
    """Raised when a scheduled command names an unregistered command type."""

    def __init__(self, command_name: str) -> None:
        self.command_name = command_name
        super().__init__(f"Command type '{command_name}' is not registered")


# ── Infrastructure ───────────────────────────────────────────────────


class InfrastructureError(ChronicleError):
    """Base class for all infrastructure-related errors."""


class EventStoreError(InfrastructureError):
    """Raised when event-store operations fail for reasons other than conflicts."""


class TransportDeliveryError(InfrastructureError):
    """Raised (or reported) when queue handling fails or a session is lost.

    Recovered by leaving the message for transport-level redelivery.
    """

    def __init__(self, message: str, message_id: str | None = None) -> None:
        self.message_id = message_id
        super().__init__(message)


__all__ = [
    "AggregateNotFoundError",
    "ChronicleError",
    "CommandValidationError",
    "ConcurrencyError",
    "DeserializationError",
    "DomainError",
    "EventStoreError",
    "InfrastructureError",
    "InvalidOperationError",
    "SequenceConflictError",
    "TransportDeliveryError",
    "UnknownCommandError",
]
