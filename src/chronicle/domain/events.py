"""Domain Event base class."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

# Fields that travel as stored-event columns rather than inside the body.
ENVELOPE_FIELDS: frozenset[str] = frozenset(
    {
        "event_id",
        "aggregate_id",
        "sequence_number",
        "timestamp",
        "actor",
        "etag",
        "correlation_id",
    }
)


class DomainEvent(BaseModel):
    """Base class for all Domain Events.

    Events are immutable facts. ``aggregate_id``, ``sequence_number`` and
    ``timestamp`` are stamped by the owning aggregate when the event is
    recorded; everything declared by a subclass forms the event *body*.

    The discriminator defaults to the class name; set ``type_name`` on a
    subclass to keep a stable name across renames.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type_name: ClassVar[str | None] = None

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    aggregate_id: str = ""
    sequence_number: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actor: str | None = None
    etag: str | None = None
    correlation_id: str | None = None

    @classmethod
    def event_type_name(cls) -> str:
        return cls.type_name or cls.__name__

    @property
    def event_type(self) -> str:
        return self.event_type_name()

    def body(self) -> dict[str, Any]:
        """Serialized payload without the envelope fields."""
        return self.model_dump(mode="json", exclude=set(ENVELOPE_FIELDS))


class UnrecognizedEvent(DomainEvent):
    """Placeholder kept in history for a stored event whose type is unknown.

    It is never applied to aggregate state but still occupies its sequence
    number, so the aggregate version stays correct.
    """

    original_type: str = ""
    raw_body: dict[str, Any] = Field(default_factory=dict)

    @property
    def event_type(self) -> str:
        return self.original_type

    def body(self) -> dict[str, Any]:
        return dict(self.raw_body)
