"""Tests for InMemoryEventStore and InMemoryEventBus."""

from __future__ import annotations

from datetime import timedelta

import pytest

from chronicle.adapters.memory import InMemoryEventBus, InMemoryEventStore
from chronicle.exceptions import SequenceConflictError
from chronicle.ports import IEventStore, StoredEvent

from .conftest import START
from .sample_domain import CustomerInfoChanged, ItemAdded


def _event(seq: int, aggregate_id: str = "order-1", **kwargs) -> StoredEvent:
    return StoredEvent(
        aggregate_id=aggregate_id,
        sequence_number=seq,
        event_type="ItemAdded",
        body={"product": f"p{seq}"},
        timestamp=START + timedelta(minutes=seq),
        **kwargs,
    )


def test_memory_store_satisfies_protocol() -> None:
    assert isinstance(InMemoryEventStore(), IEventStore)


@pytest.mark.asyncio
async def test_read_filters_and_orders() -> None:
    store = InMemoryEventStore()
    await store.append([_event(3), _event(1)])
    await store.append([_event(2), _event(1, aggregate_id="order-2")])

    assert [e.sequence_number for e in await store.read_events("order-1")] == [1, 2, 3]
    assert [
        e.sequence_number
        for e in await store.read_events("order-1", after_sequence=1, max_sequence=2)
    ] == [2]
    assert [
        e.sequence_number
        for e in await store.read_events(
            "order-1", max_timestamp=START + timedelta(minutes=2)
        )
    ] == [1, 2]
    assert await store.latest_sequence_number("order-1") == 3
    assert await store.latest_sequence_number("nobody") == 0


@pytest.mark.asyncio
async def test_conflicting_append_stores_nothing() -> None:
    store = InMemoryEventStore()
    await store.append([_event(1, actor="Alice")])

    with pytest.raises(SequenceConflictError) as exc_info:
        await store.append([_event(2), _event(1, actor="Bob")])

    assert exc_info.value.committed is not None
    assert exc_info.value.committed.actor == "Alice"
    assert exc_info.value.attempted is not None
    assert exc_info.value.attempted.actor == "Bob"
    assert len(store) == 1


@pytest.mark.asyncio
async def test_duplicate_within_batch_conflicts() -> None:
    store = InMemoryEventStore()
    with pytest.raises(SequenceConflictError):
        await store.append([_event(1), _event(1)])
    assert len(store) == 0


@pytest.mark.asyncio
async def test_append_runs_through_instrumentation(hook_registry) -> None:
    operations: list[str] = []

    async def hook(operation, attributes, next_handler):
        operations.append(operation)
        return await next_handler()

    hook_registry.register(hook, operations=["event_store.*"])
    store = InMemoryEventStore()
    await store.append([_event(1, aggregate_type="Order")])

    assert operations == ["event_store.append.Order"]


class TestInMemoryEventBus:
    @pytest.mark.asyncio
    async def test_typed_and_catch_all_handlers(self) -> None:
        bus = InMemoryEventBus()
        typed: list[str] = []
        everything: list[str] = []
        bus.subscribe(ItemAdded, lambda e: typed.append(e.product))
        bus.subscribe(None, lambda e: everything.append(e.event_type))

        await bus.publish(
            [
                CustomerInfoChanged(customer_name="A"),
                ItemAdded(product="widget"),
            ]
        )

        assert typed == ["widget"]
        assert everything == ["CustomerInfoChanged", "ItemAdded"]
        assert len(bus.published) == 2

    @pytest.mark.asyncio
    async def test_handler_error_propagates(self) -> None:
        bus = InMemoryEventBus()

        async def broken(event) -> None:
            raise RuntimeError("boom")

        bus.subscribe(ItemAdded, broken)
        with pytest.raises(RuntimeError, match="boom"):
            await bus.publish([ItemAdded(product="widget")])

    def test_subscribe_is_idempotent(self) -> None:
        bus = InMemoryEventBus()

        def handler(event) -> None:
            pass

        bus.subscribe(ItemAdded, handler)
        bus.subscribe(ItemAdded, handler)
        assert len(bus._handlers[ItemAdded]) == 1
