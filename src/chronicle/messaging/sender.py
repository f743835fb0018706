"""QueueCommandDispatcher — sends scheduled-command lookup keys to a queue."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from ..clock import SystemClock
from ..ports.scheduling import ICommandDispatcher
from .serialization import EnvelopeSerializer

if TYPE_CHECKING:
    from ..clock import Clock
    from ..ports.messaging import IQueueTransport
    from ..ports.scheduling import ScheduledCommand

logger = logging.getLogger("chronicle.messaging")


class QueueCommandDispatcher(ICommandDispatcher):
    """Dispatches scheduled commands by enqueuing their lookup key.

    Messages are grouped by aggregate id and delayed until the due time as
    far as the transport allows; the receiver re-checks due times anyway.
    """

    def __init__(
        self,
        transport: IQueueTransport,
        *,
        serializer: EnvelopeSerializer | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._transport = transport
        self._serializer = serializer or EnvelopeSerializer()
        self._clock = clock or SystemClock()

    async def dispatch(self, record: ScheduledCommand) -> None:
        delay = 0
        if record.due_time is not None:
            remaining = (record.due_time - self._clock.now()).total_seconds()
            delay = max(0, math.ceil(remaining))
        message_id = await self._transport.send(
            self._serializer.encode_command(record),
            group_id=record.aggregate_id,
            delay_seconds=delay,
        )
        logger.debug(
            "Enqueued scheduled %s #%d for %s as message %s",
            record.command_name,
            record.sequence_number,
            record.aggregate_id,
            message_id,
        )
