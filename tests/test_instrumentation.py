"""Tests for the clock, correlation context and instrumentation hooks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from chronicle.clock import SystemClock, VirtualClock, ensure_utc
from chronicle.correlation import (
    correlation_scope,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from chronicle.instrumentation import HookRegistry

from .conftest import START


def test_virtual_clock_moves_only_when_told() -> None:
    clock = VirtualClock(START)
    assert clock.now() == START
    assert clock.advance(days=1, minutes=30) == START + timedelta(days=1, minutes=30)
    clock.set(datetime(2025, 6, 1))
    assert clock.now() == datetime(2025, 6, 1, tzinfo=timezone.utc)


def test_system_clock_is_utc_aware() -> None:
    assert SystemClock().now().tzinfo is not None


def test_ensure_utc_converts_offsets() -> None:
    plus_two = timezone(timedelta(hours=2))
    assert ensure_utc(datetime(2024, 1, 1, 14, 0, tzinfo=plus_two)) == START
    assert ensure_utc(datetime(2024, 1, 1, 12, 0)).tzinfo == timezone.utc


def test_correlation_scope_restores_the_outer_id() -> None:
    outer = generate_correlation_id()
    set_correlation_id(outer)
    try:
        with correlation_scope("message-1") as current:
            assert current == "message-1"
            assert get_correlation_id() == "message-1"
        assert get_correlation_id() == outer

        with correlation_scope(None) as current:
            assert current == outer
    finally:
        set_correlation_id(None)


class TestHookRegistry:
    @pytest.mark.asyncio
    async def test_hooks_wrap_in_priority_order(self) -> None:
        registry = HookRegistry()
        calls: list[str] = []

        def make_hook(name: str):
            async def hook(operation, attributes, next_handler):
                calls.append(f"{name}:before")
                result = await next_handler()
                calls.append(f"{name}:after")
                return result

            return hook

        registry.register(make_hook("outer"), priority=0)
        registry.register(make_hook("inner"), priority=10)

        async def operation() -> str:
            calls.append("op")
            return "done"

        assert await registry.execute_all("x.y", {}, operation) == "done"
        assert calls == [
            "outer:before",
            "inner:before",
            "op",
            "inner:after",
            "outer:after",
        ]

    @pytest.mark.asyncio
    async def test_filters_by_pattern_predicate_and_enabled(self) -> None:
        registry = HookRegistry()
        seen: list[str] = []

        async def hook(operation, attributes, next_handler):
            seen.append(operation)
            return await next_handler()

        registry.register(hook, operations=["scheduler.*"])
        registry.register(
            hook, predicate=lambda op, attrs: attrs.get("aggregate.type") == "Order"
        )
        disabled = registry.register(hook)
        disabled.enabled = False

        async def noop() -> None:
            return None

        await registry.execute_all("scheduler.trigger", {}, noop)
        await registry.execute_all(
            "event_sourcing.save.Order", {"aggregate.type": "Order"}, noop
        )
        await registry.execute_all("receiver.message", {}, noop)

        assert seen == ["scheduler.trigger", "event_sourcing.save.Order"]

    @pytest.mark.asyncio
    async def test_repository_operations_are_instrumented(
        self, hook_registry, orders
    ) -> None:
        seen: list[tuple[str, object]] = []

        async def hook(operation, attributes, next_handler):
            seen.append((operation, attributes.get("aggregate.id")))
            return await next_handler()

        hook_registry.register(hook, operations=["event_sourcing.*"])
        order = orders.create("order-1")
        order.change_customer_info("Alice")
        await orders.save(order)
        await orders.get_latest("order-1")

        assert seen == [
            ("event_sourcing.save.Order", "order-1"),
            ("event_sourcing.load.Order", "order-1"),
        ]


@pytest.mark.asyncio
async def test_unregistered_hook_no_longer_runs() -> None:
    registry = HookRegistry()
    seen: list[str] = []

    async def hook(operation, attributes, proceed):
        seen.append(operation)
        return await proceed()

    registration = registry.register(hook)

    async def noop() -> None:
        return None

    await registry.execute_all("scheduler.trigger", {}, noop)
    registry.unregister(registration)
    await registry.execute_all("scheduler.trigger", {}, noop)

    assert seen == ["scheduler.trigger"]
