"""Tests for EventSourcedRepository: load, save, conflicts, publication, snapshots."""

from __future__ import annotations

from datetime import timedelta

import pytest

from chronicle.adapters.memory import InMemoryEventBus, InMemoryEventStore
from chronicle.clock import VirtualClock
from chronicle.domain import DomainEvent, UnrecognizedEvent
from chronicle.event_sourcing import EventSourcedRepository, EveryNEventsStrategy
from chronicle.exceptions import ConcurrencyError, InvalidOperationError
from chronicle.ports import StoredEvent

from .conftest import START
from .sample_domain import (
    ChangeCustomerInfo,
    CustomerInfoChanged,
    ItemAdded,
    Order,
)


async def _saved_order(
    repository: EventSourcedRepository[Order], *names: str
) -> Order:
    order = repository.create("order-1")
    for name in names:
        order.change_customer_info(name)
    (await repository.save(order)).raise_for_error()
    return order


@pytest.mark.asyncio
async def test_get_latest_returns_none_for_unknown_stream(orders) -> None:
    assert await orders.get_latest("missing") is None


@pytest.mark.asyncio
async def test_save_and_reload(orders, event_store: InMemoryEventStore) -> None:
    order = orders.create("order-1")
    order.change_customer_info("Alice")
    order.add_item("widget")

    result = await orders.save(order)

    assert result
    assert [e.sequence_number for e in result.events] == [1, 2]
    assert order.pending_events == ()
    assert len(event_store) == 2
    stored = await event_store.get_event("order-1", 2)
    assert stored is not None
    assert stored.aggregate_type == "Order"
    assert stored.body == {"product": "widget", "quantity": 1}

    loaded = await orders.get_latest("order-1")
    assert loaded is not None
    assert loaded.version == 2
    assert loaded.customer_name == "Alice"
    assert loaded.items == ["widget"]


@pytest.mark.asyncio
async def test_saving_nothing_succeeds(orders) -> None:
    result = await orders.save(orders.create("order-1"))
    assert result.success
    assert result.events == ()


@pytest.mark.asyncio
async def test_concurrent_save_is_rejected_with_both_events(orders) -> None:
    await _saved_order(orders, "Initial")
    alice = await orders.get_latest("order-1")
    bob = await orders.get_latest("order-1")
    assert alice is not None and bob is not None

    alice.apply(ChangeCustomerInfo(customer_name="Alice's name", actor="Alice"))
    bob.apply(ChangeCustomerInfo(customer_name="Bob's name", actor="Bob"))

    assert (await orders.save(alice)).success
    result = await orders.save(bob)

    assert not result.success
    assert isinstance(result.error, ConcurrencyError)
    message = str(result.error)
    assert "CustomerInfoChanged" in message
    assert "Alice" in message
    assert "Bob" in message
    assert result.error.committed is not None
    assert result.error.committed.actor == "Alice"
    assert bob.pending_events != ()
    with pytest.raises(ConcurrencyError):
        result.raise_for_error()

    latest = await orders.get_latest("order-1")
    assert latest is not None
    assert latest.customer_name == "Alice's name"


@pytest.mark.asyncio
async def test_get_version_and_as_of_date(orders, clock: VirtualClock) -> None:
    order = orders.create("order-1")
    order.change_customer_info("v1")
    await orders.save(order)
    clock.advance(hours=1)
    order.change_customer_info("v2")
    await orders.save(order)
    clock.advance(hours=1)
    order.change_customer_info("v3")
    await orders.save(order)

    at_two = await orders.get_version("order-1", 2)
    assert at_two is not None
    assert (at_two.version, at_two.customer_name) == (2, "v2")

    as_of = await orders.get_as_of_date("order-1", START + timedelta(minutes=30))
    assert as_of is not None
    assert (as_of.version, as_of.customer_name) == (1, "v1")

    assert await orders.get_as_of_date("order-1", START - timedelta(days=1)) is None


@pytest.mark.asyncio
async def test_unrecognized_events_advance_version(
    orders, event_store: InMemoryEventStore, clock: VirtualClock
) -> None:
    await event_store.append(
        [
            StoredEvent("order-1", 1, "CustomerInfoChanged", {"customer_name": "A"}),
            StoredEvent("order-1", 2, "LoyaltyPointsAwarded", {"points": 10}),
            StoredEvent("order-1", 3, "ItemAdded", {"product": "w", "colour": "red"}),
        ]
    )

    order = await orders.get_latest("order-1")

    assert order is not None
    assert order.version == 3
    assert order.items == ["w"]
    skipped = order.event_history[1]
    assert isinstance(skipped, UnrecognizedEvent)
    assert skipped.event_type == "LoyaltyPointsAwarded"
    assert skipped.body() == {"points": 10}

    order.change_customer_info("B")
    assert (await orders.save(order)).success
    assert await event_store.latest_sequence_number("order-1") == 4


def _known_events(aggregate_id: str) -> list[StoredEvent]:
    return [
        StoredEvent(aggregate_id, 1, "CustomerInfoChanged", {"customer_name": "A"}),
        StoredEvent(aggregate_id, 2, "ItemAdded", {"product": "a"}),
        StoredEvent(aggregate_id, 3, "ItemAdded", {"product": "b", "quantity": 2}),
        StoredEvent(aggregate_id, 4, "CustomerInfoChanged", {"customer_name": "B"}),
    ]


@pytest.mark.asyncio
async def test_unrecognized_trailing_event_keeps_the_stream_version(
    orders, event_store: InMemoryEventStore
) -> None:
    await event_store.append(
        [
            *_known_events("order-1"),
            StoredEvent("order-1", 5, "OrderArchived", {"archive": "cold"}),
        ]
    )

    order = await orders.get_latest("order-1")

    assert order is not None
    assert order.version == 5
    assert (order.customer_name, order.items) == ("B", ["a", "b", "b"])
    applied = [
        e for e in order.event_history if not isinstance(e, UnrecognizedEvent)
    ]
    assert len(applied) == 4
    assert isinstance(order.event_history[-1], UnrecognizedEvent)


@pytest.mark.asyncio
async def test_unrecognized_event_after_a_snapshot_keeps_the_stream_version(
    orders, event_store: InMemoryEventStore, snapshot_store
) -> None:
    await event_store.append(_known_events("order-1"))
    seeded = await orders.get_latest("order-1")
    assert seeded is not None
    await orders.snapshot(seeded)
    await event_store.append(
        [StoredEvent("order-1", 5, "OrderArchived", {"archive": "cold"})]
    )

    order = await orders.get_latest("order-1")

    assert order is not None
    assert order.version == 5
    assert (order.customer_name, order.items) == ("B", ["a", "b", "b"])
    assert [type(e) for e in order.event_history] == [UnrecognizedEvent]
    order.add_item("c")
    assert (await orders.save(order)).success
    assert await event_store.latest_sequence_number("order-1") == 6


@pytest.mark.asyncio
async def test_rehydration_is_repeatable(orders) -> None:
    order = orders.create("order-1")
    for n in range(5):
        order.change_customer_info(f"name-{n}")
        order.add_item(f"item-{n}")
    await orders.save(order)

    first = await orders.get_latest("order-1")
    second = await orders.get_latest("order-1")

    assert first is not None and second is not None
    assert first is not second
    assert first.model_dump() == second.model_dump()
    assert first.version == second.version == 10
    assert first.event_history == second.event_history


@pytest.mark.asyncio
async def test_get_version_of_a_long_stream(orders) -> None:
    order = orders.create("order-1")
    for n in range(1, 11):
        order.change_customer_info(f"v{n}")
    await orders.save(order)

    at_four = await orders.get_version("order-1", 4)

    assert at_four is not None
    assert at_four.version == 4
    assert at_four.customer_name == "v4"
    assert [e.sequence_number for e in at_four.event_history] == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_events_are_published_in_order_after_commit(
    orders, event_bus: InMemoryEventBus, event_store: InMemoryEventStore
) -> None:
    seen: list[tuple[str, int, int]] = []

    async def handler(event: DomainEvent) -> None:
        seen.append(
            (
                event.event_type,
                event.sequence_number,
                await event_store.latest_sequence_number(event.aggregate_id),
            )
        )

    event_bus.subscribe(None, handler)
    order = orders.create("order-1")
    order.change_customer_info("Alice")
    order.add_item("widget")
    await orders.save(order)

    assert seen == [("CustomerInfoChanged", 1, 2), ("ItemAdded", 2, 2)]


@pytest.mark.asyncio
async def test_subscriber_failure_does_not_undo_commit(
    orders, event_bus: InMemoryEventBus
) -> None:
    calls: list[int] = []

    def failing(event: DomainEvent) -> None:
        calls.append(event.sequence_number)
        raise RuntimeError("projection down")

    event_bus.subscribe(ItemAdded, failing)
    order = orders.create("order-1")
    order.add_item("a")
    order.add_item("b")

    result = await orders.save(order)

    assert result.success
    assert calls == [1, 2]
    assert [str(e) for e in result.handler_errors] == ["projection down"] * 2
    loaded = await orders.get_latest("order-1")
    assert loaded is not None and loaded.version == 2


@pytest.mark.asyncio
async def test_subscribers_see_in_flight_aggregate(
    orders, event_bus: InMemoryEventBus
) -> None:
    observed: list[Order | None] = []

    async def handler(event: DomainEvent) -> None:
        observed.append(await orders.get_aggregate(event.aggregate_id))

    event_bus.subscribe(CustomerInfoChanged, handler)
    order = orders.create("order-1")
    order.change_customer_info("Alice")
    await orders.save(order)

    assert observed == [order]
    assert observed[0] is order
    reloaded = await orders.get_aggregate("order-1")
    assert reloaded is not order


@pytest.mark.asyncio
async def test_refresh_applies_events_committed_elsewhere(orders) -> None:
    mine = await _saved_order(orders, "Alice")
    theirs = await orders.get_latest("order-1")
    assert theirs is not None
    theirs.add_item("widget")
    await orders.save(theirs)

    await orders.refresh(mine)

    assert mine.version == 2
    assert mine.items == ["widget"]


@pytest.mark.asyncio
async def test_refresh_rejects_pending_events(orders) -> None:
    order = await _saved_order(orders, "Alice")
    order.add_item("widget")

    with pytest.raises(
        InvalidOperationError,
        match="Aggregates having pending events cannot be updated.",
    ):
        await orders.refresh(order)


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_snapshot_then_load_reads_only_later_events(
        self, orders, snapshot_store, event_store: InMemoryEventStore
    ) -> None:
        order = await _saved_order(orders, "A", "B")
        snapshot = await orders.snapshot(order)
        assert snapshot.version == 2

        order.add_item("widget")
        await orders.save(order)
        # Removing the early events proves they are not read again.
        event_store._streams["order-1"] = [
            e for e in event_store._streams["order-1"] if e.sequence_number > 2
        ]

        loaded = await orders.get_latest("order-1")
        assert loaded is not None
        assert loaded.version == 3
        assert loaded.customer_name == "B"
        assert loaded.items == ["widget"]

    @pytest.mark.asyncio
    async def test_bounded_load_uses_older_snapshot(self, orders, snapshot_store) -> None:
        order = await _saved_order(orders, "A")
        await orders.snapshot(order)
        order.change_customer_info("B")
        order.change_customer_info("C")
        await orders.save(order)
        await orders.snapshot(order)

        loaded = await orders.get_version("order-1", 2)
        assert loaded is not None
        assert (loaded.version, loaded.customer_name) == (2, "B")
        assert (await snapshot_store.get_latest_snapshot("order-1")).version == 3
        assert (
            await snapshot_store.get_latest_snapshot("order-1", max_version=2)
        ).version == 1

    @pytest.mark.asyncio
    async def test_bounded_load_history_starts_after_the_snapshot(
        self, orders
    ) -> None:
        order = await _saved_order(orders, *(f"v{n}" for n in range(1, 11)))
        early = await orders.get_version("order-1", 2)
        assert early is not None
        await orders.snapshot(early)

        at_four = await orders.get_version("order-1", 4)

        assert at_four is not None
        assert (at_four.version, at_four.customer_name) == (4, "v4")
        assert [e.sequence_number for e in at_four.event_history] == [3, 4]
        assert order.version == 10

    @pytest.mark.asyncio
    async def test_snapshot_requires_committed_state(self, orders) -> None:
        order = orders.create("order-1")
        with pytest.raises(InvalidOperationError):
            await orders.snapshot(order)
        order.change_customer_info("A")
        with pytest.raises(InvalidOperationError):
            await orders.snapshot(order)

    @pytest.mark.asyncio
    async def test_snapshot_without_store(self, event_store) -> None:
        repository = EventSourcedRepository(Order, event_store)
        order = await _saved_order(repository, "A")
        with pytest.raises(InvalidOperationError, match="No snapshot store"):
            await repository.snapshot(order)

    @pytest.mark.asyncio
    async def test_strategy_snapshots_when_crossing_multiple(
        self, event_store, snapshot_store, clock
    ) -> None:
        repository = EventSourcedRepository(
            Order,
            event_store,
            snapshot_store=snapshot_store,
            clock=clock,
            snapshot_strategy=EveryNEventsStrategy(3),
        )
        order = await _saved_order(repository, "1", "2")
        assert await snapshot_store.get_latest_snapshot("order-1") is None

        order.change_customer_info("3")
        order.change_customer_info("4")
        await repository.save(order)

        snapshot = await snapshot_store.get_latest_snapshot("order-1")
        assert snapshot is not None
        assert snapshot.version == 4
        assert snapshot.created_at == clock.now()

    def test_strategy_rejects_non_positive_n(self) -> None:
        with pytest.raises(ValueError):
            EveryNEventsStrategy(0)
