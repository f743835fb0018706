"""Instrumentation hooks around loads, saves, trigger passes and deliveries.

Every instrumented call goes through :meth:`HookRegistry.execute_all` with a
dotted operation name and a flat attribute dict:

- ``event_sourcing.load.<AggregateType>`` / ``event_sourcing.save.<AggregateType>``
- ``event_store.append.<AggregateType>``
- ``event.dispatch.<EventType>``
- ``scheduler.trigger`` / ``scheduler.apply.<CommandName>``
- ``receiver.message``

Hooks are async middleware: they receive the operation, its attributes and
a ``proceed`` callable, and must await ``proceed()`` exactly once.
"""

from __future__ import annotations

import fnmatch
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    Proceed = Callable[[], Awaitable[Any]]
    AttributePredicate = Callable[[str, dict[str, Any]], bool]


@runtime_checkable
class InstrumentationHook(Protocol):
    async def __call__(
        self, operation: str, attributes: dict[str, Any], proceed: Proceed
    ) -> Any: ...


@dataclass(eq=False)
class HookRegistration:
    """A hook plus the operations it applies to.

    ``operations`` holds fnmatch patterns (empty matches everything). Lower
    ``priority`` values wrap further out.
    """

    hook: InstrumentationHook
    priority: int = 0
    operations: tuple[str, ...] = ()
    predicate: AttributePredicate | None = None
    enabled: bool = True

    def applies_to(self, operation: str, attributes: dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        if self.operations and not any(
            fnmatch.fnmatchcase(operation, pattern) for pattern in self.operations
        ):
            return False
        return self.predicate is None or self.predicate(operation, attributes)


@dataclass
class HookRegistry:
    """Ordered set of instrumentation hooks.

    Usage::

        async def timed(operation, attributes, proceed):
            started = time.monotonic()
            try:
                return await proceed()
            finally:
                log.info("%s took %.3fs", operation, time.monotonic() - started)

        get_hook_registry().register(timed, operations=["scheduler.*"])
    """

    _registrations: list[HookRegistration] = field(default_factory=list)

    def register(
        self,
        hook: InstrumentationHook,
        *,
        priority: int = 0,
        operations: list[str] | None = None,
        predicate: AttributePredicate | None = None,
        enabled: bool = True,
    ) -> HookRegistration:
        registration = HookRegistration(
            hook,
            priority=priority,
            operations=tuple(operations or ()),
            predicate=predicate,
            enabled=enabled,
        )
        self._registrations.append(registration)
        # stable: equal priorities keep registration order
        self._registrations.sort(key=lambda r: r.priority)
        return registration

    def unregister(self, registration: HookRegistration) -> None:
        if registration in self._registrations:
            self._registrations.remove(registration)

    async def execute_all(
        self, operation: str, attributes: dict[str, Any], call: Proceed
    ) -> Any:
        """Run *call* wrapped by every hook that applies to *operation*."""
        chain = call
        for registration in reversed(self._registrations):
            if registration.applies_to(operation, attributes):
                chain = _wrap(registration.hook, operation, attributes, chain)
        return await chain()

    def clear(self) -> None:
        self._registrations.clear()


def _wrap(
    hook: InstrumentationHook,
    operation: str,
    attributes: dict[str, Any],
    proceed: Proceed,
) -> Proceed:
    async def wrapped() -> Any:
        return await hook(operation, attributes, proceed)

    return wrapped


_registry: ContextVar[HookRegistry | None] = ContextVar(
    "chronicle_hook_registry", default=None
)


def get_hook_registry() -> HookRegistry:
    """The registry for the current context, created on first use."""
    registry = _registry.get()
    if registry is None:
        registry = HookRegistry()
        _registry.set(registry)
    return registry


def set_hook_registry(registry: HookRegistry) -> None:
    _registry.set(registry)
