"""EnvelopeSerializer — JSON roundtrip for queue messages."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from pydantic import ValidationError

from ..exceptions import DeserializationError
from .envelope import (
    SCHEDULED_COMMAND_MESSAGE_TYPE,
    MessageEnvelope,
    ScheduledCommandMessage,
)

if TYPE_CHECKING:
    from ..ports.scheduling import ScheduledCommand


class EnvelopeSerializer:
    """Serialize/deserialize MessageEnvelope to/from JSON bytes."""

    def serialize(self, envelope: MessageEnvelope) -> bytes:
        """Encode envelope to JSON bytes."""
        return json.dumps(envelope.model_dump(mode="json")).encode("utf-8")

    def deserialize(self, raw: bytes) -> MessageEnvelope:
        """Decode JSON bytes to MessageEnvelope."""
        try:
            return MessageEnvelope.model_validate_json(raw)
        except (ValidationError, UnicodeDecodeError) as e:
            raise DeserializationError(f"Invalid message envelope: {e}") from e

    def encode_command(self, record: ScheduledCommand) -> bytes:
        """Envelope carrying the lookup key of *record*."""
        message = ScheduledCommandMessage.for_record(record)
        return self.serialize(message.wrap(record.correlation_id))

    def decode_command(
        self, raw: bytes
    ) -> tuple[MessageEnvelope, ScheduledCommandMessage]:
        """Decode a scheduled-command message.

        Raises:
            DeserializationError: the bytes are not a scheduled-command envelope.
        """
        envelope = self.deserialize(raw)
        if envelope.message_type != SCHEDULED_COMMAND_MESSAGE_TYPE:
            raise DeserializationError(
                f"Unexpected message type '{envelope.message_type}'"
            )
        try:
            return envelope, ScheduledCommandMessage.model_validate(envelope.payload)
        except ValidationError as e:
            raise DeserializationError(f"Invalid scheduled command message: {e}") from e
