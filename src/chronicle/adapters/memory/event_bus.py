"""InMemoryEventBus — ordered in-process dispatch of committed events."""

from __future__ import annotations

import logging
from inspect import isawaitable
from typing import TYPE_CHECKING

from chronicle.correlation import get_correlation_id
from chronicle.instrumentation import get_hook_registry
from chronicle.ports.event_bus import IEventBus

if TYPE_CHECKING:
    from chronicle.domain.events import DomainEvent
    from chronicle.ports.event_bus import EventHandler

logger = logging.getLogger(__name__)


class InMemoryEventBus(IEventBus):
    """Local execution engine for committed events.

    Events are handled one at a time, in the order given, and each handler
    finishes before the next event is dispatched, so a consequence handler
    always observes its aggregate's events in sequence order. Handler errors
    are logged and propagated to the publisher.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent] | None, list[EventHandler]] = {}
        self._published: list[DomainEvent] = []

    # ── Registration ─────────────────────────────────────────────

    def subscribe(
        self, event_type: type[DomainEvent] | None, handler: EventHandler
    ) -> None:
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    # ── Dispatching ──────────────────────────────────────────────

    async def publish(self, events: list[DomainEvent]) -> None:
        registry = get_hook_registry()
        for event in events:
            self._published.append(event)
            handlers = [
                *self._handlers.get(type(event), ()),
                *self._handlers.get(None, ()),
            ]
            if not handlers:
                continue

            async def _dispatch(
                current: DomainEvent = event,
                current_handlers: list[EventHandler] = handlers,
            ) -> None:
                for handler in current_handlers:
                    await self._invoke(handler, current)

            await registry.execute_all(
                f"event.dispatch.{event.event_type}",
                {
                    "event.type": event.event_type,
                    "event.id": event.event_id,
                    "aggregate.id": event.aggregate_id,
                    "correlation_id": event.correlation_id or get_correlation_id(),
                },
                _dispatch,
            )

    async def _invoke(self, handler: EventHandler, event: DomainEvent) -> None:
        try:
            result = handler(event)
            if isawaitable(result):
                await result
        except Exception:
            logger.exception(
                "Error executing handler %s for event %s",
                getattr(handler, "__name__", type(handler).__name__),
                event.event_type,
            )
            raise

    # ── Introspection ────────────────────────────────────────────

    @property
    def published(self) -> list[DomainEvent]:
        return list(self._published)

    def clear(self) -> None:
        """Remove handlers and published history (testing utility)."""
        self._handlers.clear()
        self._published.clear()
