"""Queue transport ports consumed by the scheduled-command receiver."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class IQueueMessage(Protocol):
    """One delivery of a queue message.

    A message is either completed or left alone; an unacknowledged message
    becomes visible again once the transport's visibility timeout expires.
    """

    @property
    def body(self) -> bytes:
        ...

    @property
    def message_id(self) -> str:
        ...

    @property
    def delivery_count(self) -> int:
        """1 on first delivery, incremented by each redelivery."""
        ...

    async def complete(self) -> None:
        """Acknowledge the message so it is never redelivered."""
        ...


@runtime_checkable
class IQueueTransport(Protocol):
    """
    Port for an at-least-once queue (SQS, in-memory, ...).

    Infrastructure modules provide concrete adapters.
    """

    async def send(
        self,
        body: bytes,
        *,
        group_id: str | None = None,
        delay_seconds: int = 0,
    ) -> str:
        """Enqueue *body*, hidden for *delay_seconds*; returns the message id."""
        ...

    async def receive(
        self, *, max_messages: int = 10, wait_time_seconds: int = 0
    ) -> list[IQueueMessage]:
        """Receive up to *max_messages*, long-polling for *wait_time_seconds*."""
        ...
