"""Wire shapes for scheduled-command delivery."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from ..ports.scheduling import ScheduledCommand

SCHEDULED_COMMAND_MESSAGE_TYPE = "ScheduledCommand"


class MessageEnvelope(BaseModel):
    """What travels on the queue: a typed payload plus its correlation id."""

    model_config = ConfigDict(frozen=True)

    envelope_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    message_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    correlation_id: str | None = None
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ScheduledCommandMessage(BaseModel):
    """Lookup key for a scheduled command; the command itself stays in the store."""

    model_config = ConfigDict(frozen=True)

    aggregate_id: str
    sequence_number: int = Field(ge=1)
    due_time: datetime | None = None
    command_name: str | None = None

    @classmethod
    def for_record(cls, record: ScheduledCommand) -> ScheduledCommandMessage:
        return cls(
            aggregate_id=record.aggregate_id,
            sequence_number=record.sequence_number,
            due_time=record.due_time,
            command_name=record.command_name,
        )

    def wrap(self, correlation_id: str | None = None) -> MessageEnvelope:
        return MessageEnvelope(
            message_type=SCHEDULED_COMMAND_MESSAGE_TYPE,
            payload=self.model_dump(mode="json"),
            correlation_id=correlation_id,
        )
