"""Shared fixtures: in-memory infrastructure on a virtual clock."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from chronicle.adapters.memory import (
    InMemoryEventBus,
    InMemoryEventStore,
    InMemoryScheduledCommandStore,
    InMemorySnapshotStore,
)
from chronicle.clock import VirtualClock
from chronicle.domain import CommandRegistry
from chronicle.event_sourcing import EventSourcedRepository
from chronicle.instrumentation import HookRegistry, set_hook_registry
from chronicle.scheduling import CommandTriggerEngine, SchedulingPolicy

from .sample_domain import CheckingAccount, Order, command_registry

START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def hook_registry() -> HookRegistry:
    registry = HookRegistry()
    set_hook_registry(registry)
    return registry


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock(START)


@pytest.fixture
def event_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def snapshot_store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def scheduled_store() -> InMemoryScheduledCommandStore:
    return InMemoryScheduledCommandStore()


@pytest.fixture
def commands() -> CommandRegistry:
    return command_registry()


@pytest.fixture
def orders(
    event_store: InMemoryEventStore,
    snapshot_store: InMemorySnapshotStore,
    event_bus: InMemoryEventBus,
    clock: VirtualClock,
) -> EventSourcedRepository[Order]:
    return EventSourcedRepository(
        Order,
        event_store,
        snapshot_store=snapshot_store,
        event_bus=event_bus,
        clock=clock,
    )


@pytest.fixture
def accounts(
    event_store: InMemoryEventStore, clock: VirtualClock
) -> EventSourcedRepository[CheckingAccount]:
    return EventSourcedRepository(CheckingAccount, event_store, clock=clock)


@pytest.fixture
def policy() -> SchedulingPolicy:
    return SchedulingPolicy(max_attempts=3)


@pytest.fixture
def engine(
    scheduled_store: InMemoryScheduledCommandStore,
    orders: EventSourcedRepository[Order],
    accounts: EventSourcedRepository[CheckingAccount],
    commands: CommandRegistry,
    clock: VirtualClock,
    policy: SchedulingPolicy,
) -> CommandTriggerEngine:
    return CommandTriggerEngine(
        scheduled_store, [orders, accounts], commands, clock=clock, policy=policy
    )
