"""EventSourcedAggregate — state derived entirely from an ordered event stream."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from pydantic import BaseModel, ConfigDict, PrivateAttr
from typing_extensions import Self

from ..exceptions import CommandValidationError
from .event_registry import EventTypeRegistry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ..clock import Clock
    from ..ports.snapshots import Snapshot
    from .commands import AggregateCommand
    from .events import DomainEvent

E = TypeVar("E", bound="DomainEvent")

_registries: dict[type[Any], EventTypeRegistry] = {}


class EventSourcedAggregate(BaseModel):
    """Base class for event-sourced aggregates.

    State changes only through events. Each subclass owns an
    :class:`EventTypeRegistry`, filled at import time with ``applies``::

        class Order(EventSourcedAggregate):
            customer_name: str = ""

        @Order.applies(CustomerInfoChanged)
        def _customer_info_changed(order: Order, event: CustomerInfoChanged) -> None:
            order.customer_name = event.customer_name

    Commands are applied with :meth:`apply`; they validate against current
    state and then ``record`` new events, which are stamped with the next
    sequence number, mutate state immediately and wait in ``pending_events``
    until a repository saves them.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    stream_name: ClassVar[str | None] = None

    id: str
    _version: int = PrivateAttr(default=0)
    _event_history: list[DomainEvent] = PrivateAttr(default_factory=list)
    _pending_events: list[DomainEvent] = PrivateAttr(default_factory=list)
    _etags: set[str] = PrivateAttr(default_factory=set)
    _clock: Clock | None = PrivateAttr(default=None)
    _command: AggregateCommand | None = PrivateAttr(default=None)

    def __init__(self, clock: Clock | None = None, **data: object) -> None:
        super().__init__(**data)
        self._clock = clock

    # ── Event type registration ──────────────────────────────────

    @classmethod
    def event_registry(cls) -> EventTypeRegistry:
        """The registry of event types this aggregate type understands."""
        registry = _registries.get(cls)
        if registry is None:
            registry = _registries[cls] = EventTypeRegistry()
        return registry

    @classmethod
    def applies(
        cls, event_class: type[E], *, name: str | None = None
    ) -> Callable[[Callable[[Self, E], None]], Callable[[Self, E], None]]:
        """Decorator registering a mutation function for *event_class*."""

        def decorator(
            mutation: Callable[[Self, E], None],
        ) -> Callable[[Self, E], None]:
            cls.event_registry().register(event_class, mutation, name=name)
            return mutation

        return decorator

    @classmethod
    def aggregate_type_name(cls) -> str:
        return cls.stream_name or cls.__name__

    # ── Read-only views ──────────────────────────────────────────

    @property
    def version(self) -> int:
        """Sequence number of the latest event, committed or pending."""
        return self._version

    @property
    def event_history(self) -> tuple[DomainEvent, ...]:
        return tuple(self._event_history)

    @property
    def pending_events(self) -> tuple[DomainEvent, ...]:
        return tuple(self._pending_events)

    @property
    def etags(self) -> frozenset[str]:
        return frozenset(self._etags)

    def has_etag(self, etag: str) -> bool:
        return etag in self._etags

    def use_clock(self, clock: Clock | None) -> None:
        self._clock = clock

    # ── Commands and new events ──────────────────────────────────

    def apply(self, command: AggregateCommand) -> Self:
        """Validate *command* against current state, then enact it.

        Raises:
            CommandValidationError: the command's rules reject it.
            DomainError: the aggregate rejects the change while enacting.
        """
        result = command.validate_against(self)
        if not result.is_valid:
            raise CommandValidationError(command.command_name(), result)
        self._command = command
        try:
            command.enact(self)
        finally:
            self._command = None
        return self

    def record(self, event: DomainEvent) -> DomainEvent:
        """Stamp *event* as the next one in this stream, apply it, keep it pending."""
        updates: dict[str, Any] = {
            "aggregate_id": self.id,
            "sequence_number": self._version + 1,
        }
        if self._clock is not None:
            updates["timestamp"] = self._clock.now()
        command = self._command
        if command is not None:
            for name in ("actor", "etag", "correlation_id"):
                if getattr(event, name) is None and getattr(command, name) is not None:
                    updates[name] = getattr(command, name)
        stamped = event.model_copy(update=updates)
        self._mutate(stamped)
        self._pending_events.append(stamped)
        self._version = stamped.sequence_number
        return stamped

    # ── Persistence-side transitions ─────────────────────────────

    def replay(self, event: DomainEvent) -> None:
        """Fold an already-committed event into state and history."""
        self._mutate(event)
        self.skip(event)

    def skip(self, event: DomainEvent) -> None:
        """Keep a committed event in history without applying it."""
        self._event_history.append(event)
        self._version = max(self._version, event.sequence_number)

    def mark_pending_committed(self) -> list[DomainEvent]:
        """Move pending events into history and return them."""
        committed = list(self._pending_events)
        self._event_history.extend(committed)
        self._pending_events.clear()
        return committed

    def to_state(self) -> dict[str, Any]:
        """Serialized state for snapshots."""
        return self.model_dump(mode="json")

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot, clock: Clock | None = None) -> Self:
        aggregate = cls.model_validate(snapshot.state)
        aggregate.use_clock(clock)
        aggregate._version = snapshot.version
        aggregate._etags = set(snapshot.etags)
        return aggregate

    @classmethod
    def from_events(
        cls, aggregate_id: str, events: Iterable[DomainEvent], clock: Clock | None = None
    ) -> Self:
        """Build an aggregate from committed events (handy for tests)."""
        aggregate = cls(id=aggregate_id, clock=clock)
        for event in events:
            aggregate.replay(event)
        return aggregate

    def _mutate(self, event: DomainEvent) -> None:
        type(self).event_registry().apply(self, event)
        if event.etag:
            self._etags.add(event.etag)
