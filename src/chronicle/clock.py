"""Clock — injected time source for event timestamps and due-time checks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Port: abstract clock so rehydration and scheduling stay deterministic."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Production clock that delegates to ``datetime.now(timezone.utc)``."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class VirtualClock:
    """Test clock pinned to a point in time that only moves when told to.

    Usage::

        clock = VirtualClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        clock.advance(days=1)
        clock.set(some_other_instant)
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = ensure_utc(start or datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._now

    def set(self, instant: datetime) -> None:
        self._now = ensure_utc(instant)

    def advance(self, **kwargs: float) -> datetime:
        """Advance by the given ``timedelta`` kwargs and return the new time."""
        self._now += timedelta(**kwargs)
        return self._now


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = ["Clock", "SystemClock", "VirtualClock", "ensure_utc"]
