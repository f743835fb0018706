"""InMemoryQueue — IQueueTransport with visibility timeouts for tests."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from ..clock import SystemClock
from ..ports.messaging import IQueueMessage, IQueueTransport

if TYPE_CHECKING:
    from datetime import datetime

    from ..clock import Clock


@dataclass
class _QueuedMessage:
    body: bytes
    message_id: str
    group_id: str | None
    visible_at: datetime
    delivery_count: int = 0
    receipt: str = ""


@dataclass
class InMemoryQueueMessage:
    """One delivery handed out by :class:`InMemoryQueue`."""

    body: bytes
    message_id: str
    delivery_count: int
    receipt: str
    queue: InMemoryQueue = field(repr=False)

    async def complete(self) -> None:
        self.queue.complete(self.message_id, self.receipt)


class InMemoryQueue(IQueueTransport):
    """At-least-once in-memory queue.

    A received message stays invisible for ``visibility_timeout`` seconds
    (measured on the injected clock) and is handed out again unless it is
    completed first. Completing with a stale receipt is ignored, like a real
    broker after the visibility window lapses.
    """

    def __init__(
        self, *, visibility_timeout: float = 30.0, clock: Clock | None = None
    ) -> None:
        self._visibility_timeout = timedelta(seconds=visibility_timeout)
        self._clock = clock or SystemClock()
        self._messages: dict[str, _QueuedMessage] = {}
        self._completed: list[str] = []

    async def send(
        self,
        body: bytes,
        *,
        group_id: str | None = None,
        delay_seconds: int = 0,
    ) -> str:
        message_id = str(uuid.uuid4())
        self._messages[message_id] = _QueuedMessage(
            body=body,
            message_id=message_id,
            group_id=group_id,
            visible_at=self._clock.now() + timedelta(seconds=delay_seconds),
        )
        return message_id

    async def receive(
        self, *, max_messages: int = 10, wait_time_seconds: int = 0  # noqa: ARG002
    ) -> list[IQueueMessage]:
        now = self._clock.now()
        out: list[IQueueMessage] = []
        for queued in self._messages.values():
            if len(out) >= max_messages:
                break
            if queued.visible_at > now:
                continue
            queued.delivery_count += 1
            queued.receipt = str(uuid.uuid4())
            queued.visible_at = now + self._visibility_timeout
            out.append(
                InMemoryQueueMessage(
                    body=queued.body,
                    message_id=queued.message_id,
                    delivery_count=queued.delivery_count,
                    receipt=queued.receipt,
                    queue=self,
                )
            )
        return out

    def complete(self, message_id: str, receipt: str) -> None:
        queued = self._messages.get(message_id)
        if queued is None or queued.receipt != receipt:
            return
        del self._messages[message_id]
        self._completed.append(message_id)

    # ── Test helpers ─────────────────────────────────────────────

    @property
    def pending_count(self) -> int:
        return len(self._messages)

    @property
    def completed(self) -> list[str]:
        return list(self._completed)

    def clear(self) -> None:
        self._messages.clear()
        self._completed.clear()
