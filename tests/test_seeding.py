"""Tests for seeding event stores from JSON and event lists."""

from __future__ import annotations

import io
import json

import pytest

from chronicle.event_sourcing import seed_events, seed_from_json
from chronicle.exceptions import DeserializationError, SequenceConflictError

from .sample_domain import CustomerInfoChanged


@pytest.mark.asyncio
async def test_seed_from_json_then_load(event_store, orders) -> None:
    document = json.dumps(
        [
            {
                "aggregate_id": "order-1",
                "sequence_number": 1,
                "event_type": "CustomerInfoChanged",
                "body": {"customer_name": "Alice"},
                "timestamp": "2023-12-31T00:00:00+00:00",
                "aggregate_type": "Order",
            },
            {
                "aggregate_id": "order-1",
                "sequence_number": 2,
                "event_type": "ItemAdded",
                "body": {"product": "widget", "quantity": 2},
                "actor": "Alice",
            },
        ]
    )

    count = await seed_from_json(event_store, io.StringIO(document))

    assert count == 2
    order = await orders.get_latest("order-1")
    assert order is not None
    assert order.version == 2
    assert order.items == ["widget", "widget"]
    assert order.event_history[1].actor == "Alice"


@pytest.mark.asyncio
async def test_seed_from_invalid_json(event_store) -> None:
    with pytest.raises(DeserializationError):
        await seed_from_json(event_store, "{not json")
    with pytest.raises(DeserializationError):
        await seed_from_json(event_store, '[{"aggregate_id": "x"}]')
    assert len(event_store) == 0


@pytest.mark.asyncio
async def test_seed_domain_events(event_store) -> None:
    events = [
        CustomerInfoChanged(aggregate_id="order-9", sequence_number=1, customer_name="A"),
        CustomerInfoChanged(aggregate_id="order-9", sequence_number=2, customer_name="B"),
    ]

    assert await seed_events(event_store, events, aggregate_type="Order") == 2

    stored = await event_store.read_events("order-9")
    assert [e.body["customer_name"] for e in stored] == ["A", "B"]
    assert {e.aggregate_type for e in stored} == {"Order"}


@pytest.mark.asyncio
async def test_seeding_an_existing_sequence_conflicts(event_store) -> None:
    event = CustomerInfoChanged(
        aggregate_id="order-1", sequence_number=1, customer_name="A"
    )
    await seed_events(event_store, [event])

    with pytest.raises(SequenceConflictError):
        await seed_events(event_store, [event])
