"""IEventBus — in-process publication of committed events."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, TypeAlias, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..domain.events import DomainEvent

EventHandler: TypeAlias = "Callable[[DomainEvent], Awaitable[None] | None]"


@runtime_checkable
class IEventBus(Protocol):
    """Port the repository publishes committed events to.

    Each committed event is published exactly once, in ascending sequence
    order, after the durable commit.
    """

    def subscribe(
        self, event_type: type[DomainEvent] | None, handler: EventHandler
    ) -> None:
        """Register *handler* for *event_type* (``None`` means every event)."""
        ...

    async def publish(self, events: list[DomainEvent]) -> None:
        ...
