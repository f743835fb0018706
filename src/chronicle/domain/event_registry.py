"""EventTypeRegistry — maps event type names to classes and mutation functions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable

    from .events import DomainEvent

    Mutation = Callable[[Any, Any], None]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodedEvent:
    """Outcome of a lenient decode.

    - ``recognized``: the type name is registered.
    - ``event``: the hydrated event, or ``None`` when nothing usable parsed.
    - ``ignored_fields``: body members that were unknown or failed to parse.
    """

    event: DomainEvent | None
    ignored_fields: tuple[str, ...] = ()
    recognized: bool = True


class EventTypeRegistry:
    """Registry for ``event_type_name: str`` → (event class, mutation).

    One registry exists per aggregate type. The mutation is a pure function
    ``(aggregate, event) -> None`` that folds the event into the aggregate's
    state; events registered without one are recorded but change nothing.

    Usage::

        registry = EventTypeRegistry()
        registry.register(ItemAdded, lambda order, e: order.items.append(e.item))
        decoded = registry.decode("ItemAdded", {"item": "widget"})
    """

    def __init__(self) -> None:
        self._registry: dict[str, type[DomainEvent]] = {}
        self._mutations: dict[str, Mutation] = {}

    def register(
        self,
        event_class: type[DomainEvent],
        mutation: Mutation | None = None,
        *,
        name: str | None = None,
    ) -> None:
        """Register *event_class* (under *name* or its type name)."""
        type_name = name or event_class.event_type_name()
        self._registry[type_name] = event_class
        if mutation is not None:
            self._mutations[type_name] = mutation

    def get(self, event_type: str) -> type[DomainEvent] | None:
        """Look up an event class by type name."""
        return self._registry.get(event_type)

    def has(self, event_type: str) -> bool:
        return event_type in self._registry

    def apply(self, aggregate: Any, event: DomainEvent) -> None:
        """Fold *event* into *aggregate* using its registered mutation."""
        mutation = self._mutations.get(event.event_type)
        if mutation is not None:
            mutation(aggregate, event)

    def decode(self, event_type: str, data: dict[str, Any]) -> DecodedEvent:
        """Reconstruct an event, keeping whatever part of *data* parses.

        Unknown members are dropped up front; members that fail validation
        are dropped one round at a time until the remainder validates.
        """
        event_class = self.get(event_type)
        if event_class is None:
            return DecodedEvent(event=None, recognized=False)

        known = event_class.model_fields
        ignored = [key for key in data if key not in known]
        candidate = {key: value for key, value in data.items() if key in known}

        while True:
            try:
                event = event_class.model_validate(candidate)
            except ValidationError as e:
                bad = {
                    err["loc"][0]
                    for err in e.errors()
                    if err["loc"] and err["loc"][0] in candidate
                }
                if not bad:
                    logger.debug(
                        "Event %s could not be decoded: %s", event_type, e
                    )
                    return DecodedEvent(
                        event=None, ignored_fields=tuple(sorted(data))
                    )
                for key in bad:
                    candidate.pop(key)
                    ignored.append(str(key))
                continue
            if ignored:
                logger.debug(
                    "Event %s decoded ignoring fields %s", event_type, sorted(ignored)
                )
            return DecodedEvent(event=event, ignored_fields=tuple(sorted(ignored)))

    def list_registered(self) -> list[str]:
        """Return all registered event type names."""
        return list(self._registry.keys())

    def clear(self) -> None:
        """Remove all registrations (testing utility)."""
        self._registry.clear()
        self._mutations.clear()
