"""Table mappings for the SQLAlchemy adapters."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .types import JSONType, UTCDateTime


class Base(DeclarativeBase):
    """Declarative base owning the chronicle tables."""


class StoredEventModel(Base):
    """One row per committed event; ``(aggregate_id, sequence_number)`` is unique."""

    __tablename__ = "chronicle_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(64), unique=True)
    aggregate_id: Mapped[str] = mapped_column(String(255))
    aggregate_type: Mapped[str] = mapped_column(String(255), default="")
    sequence_number: Mapped[int] = mapped_column(Integer)
    event_type: Mapped[str] = mapped_column(String(255))
    body: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime)
    actor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    etag: Mapped[str | None] = mapped_column(String(255), nullable=True)
    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "aggregate_id", "sequence_number", name="uq_chronicle_events_stream"
        ),
        Index("ix_chronicle_events_timestamp", "aggregate_id", "timestamp"),
    )


class SnapshotModel(Base):
    """Snapshots are kept per version so bounded loads can pick an older one."""

    __tablename__ = "chronicle_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    aggregate_id: Mapped[str] = mapped_column(String(255))
    aggregate_type_name: Mapped[str] = mapped_column(String(255))
    version: Mapped[int] = mapped_column(Integer)
    state: Mapped[dict[str, Any]] = mapped_column(JSONType)
    etags: Mapped[list[str]] = mapped_column(JSONType, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime)

    __table_args__ = (
        UniqueConstraint(
            "aggregate_id", "version", name="uq_chronicle_snapshots_version"
        ),
    )


class ScheduledCommandModel(Base):
    """A scheduled command; the composite primary key is its identity."""

    __tablename__ = "chronicle_scheduled_commands"

    aggregate_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    sequence_number: Mapped[int] = mapped_column(Integer, primary_key=True)
    aggregate_type: Mapped[str] = mapped_column(String(255))
    command_name: Mapped[str] = mapped_column(String(255))
    command_body: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    due_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    precondition_aggregate_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    precondition_sequence_number: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )
    applied_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    final_attempt_time: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_time: Mapped[datetime] = mapped_column(UTCDateTime)
    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index(
            "ix_chronicle_scheduled_pending",
            "applied_time",
            "final_attempt_time",
            "due_time",
        ),
    )
