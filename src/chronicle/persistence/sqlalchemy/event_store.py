"""SQLAlchemyEventStore — append-only event log on a relational database."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...exceptions import EventStoreError, SequenceConflictError
from ...instrumentation import get_hook_registry
from ...ports.event_store import IEventStore, StoredEvent
from .models import StoredEventModel

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


class SQLAlchemyEventStore(IEventStore):
    """
    Event store backed by the ``chronicle_events`` table.

    Each call runs in its own session and transaction taken from
    *session_factory*. The unique ``(aggregate_id, sequence_number)``
    constraint decides who committed first: a violated constraint rolls the
    whole batch back and surfaces as :class:`SequenceConflictError` carrying
    both the committed and the attempted event.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, events: list[StoredEvent]) -> None:
        if not events:
            return
        aggregate_type = events[0].aggregate_type or "unknown"
        await get_hook_registry().execute_all(
            f"event_store.append.{aggregate_type}",
            {
                "aggregate.type": aggregate_type,
                "aggregate.id": events[0].aggregate_id,
                "event_count": len(events),
            },
            lambda: self._append_internal(events),
        )

    async def _append_internal(self, events: list[StoredEvent]) -> None:
        seen: dict[tuple[str, int], StoredEvent] = {}
        for event in events:
            key = (event.aggregate_id, event.sequence_number)
            if key in seen:
                raise SequenceConflictError(committed=seen[key], attempted=event)
            seen[key] = event

        try:
            async with self._session_factory() as session, session.begin():
                session.add_all([self._to_model(event) for event in events])
        except IntegrityError as e:
            conflict = await self._find_conflict(events)
            if conflict is None:
                raise EventStoreError(f"Failed to append events: {e}") from e
            committed, attempted = conflict
            raise SequenceConflictError(
                committed=committed, attempted=attempted
            ) from e
        except SQLAlchemyError as e:
            raise EventStoreError(f"Failed to append events: {e}") from e

        logger.debug(
            "Appended %d event(s) to %s", len(events), events[0].aggregate_id
        )

    async def _find_conflict(
        self, events: list[StoredEvent]
    ) -> tuple[StoredEvent, StoredEvent] | None:
        attempted = {(e.aggregate_id, e.sequence_number): e for e in events}
        stmt = (
            select(StoredEventModel)
            .where(
                or_(
                    *(
                        and_(
                            StoredEventModel.aggregate_id == aggregate_id,
                            StoredEventModel.sequence_number == sequence_number,
                        )
                        for aggregate_id, sequence_number in attempted
                    )
                )
            )
            .order_by(StoredEventModel.sequence_number)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.scalars().first()
        if row is None:
            return None
        return self._to_stored(row), attempted[(row.aggregate_id, row.sequence_number)]

    async def read_events(
        self,
        aggregate_id: str,
        *,
        after_sequence: int = 0,
        max_sequence: int | None = None,
        max_timestamp: datetime | None = None,
    ) -> list[StoredEvent]:
        stmt = select(StoredEventModel).where(
            StoredEventModel.aggregate_id == aggregate_id,
            StoredEventModel.sequence_number > after_sequence,
        )
        if max_sequence is not None:
            stmt = stmt.where(StoredEventModel.sequence_number <= max_sequence)
        if max_timestamp is not None:
            stmt = stmt.where(StoredEventModel.timestamp <= max_timestamp)
        stmt = stmt.order_by(StoredEventModel.sequence_number)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [self._to_stored(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise EventStoreError(f"Failed to read events: {e}") from e

    async def get_event(
        self, aggregate_id: str, sequence_number: int
    ) -> StoredEvent | None:
        stmt = select(StoredEventModel).where(
            StoredEventModel.aggregate_id == aggregate_id,
            StoredEventModel.sequence_number == sequence_number,
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        return self._to_stored(row) if row is not None else None

    async def latest_sequence_number(self, aggregate_id: str) -> int:
        stmt = select(func.max(StoredEventModel.sequence_number)).where(
            StoredEventModel.aggregate_id == aggregate_id
        )
        async with self._session_factory() as session:
            latest = (await session.execute(stmt)).scalar()
        return int(latest or 0)

    @staticmethod
    def _to_model(event: StoredEvent) -> StoredEventModel:
        return StoredEventModel(
            event_id=event.event_id,
            aggregate_id=event.aggregate_id,
            aggregate_type=event.aggregate_type,
            sequence_number=event.sequence_number,
            event_type=event.event_type,
            body=event.body,
            timestamp=event.timestamp,
            actor=event.actor,
            etag=event.etag,
            correlation_id=event.correlation_id,
        )

    @staticmethod
    def _to_stored(row: StoredEventModel) -> StoredEvent:
        return StoredEvent(
            aggregate_id=row.aggregate_id,
            sequence_number=row.sequence_number,
            event_type=row.event_type,
            body=dict(row.body or {}),
            timestamp=row.timestamp,
            aggregate_type=row.aggregate_type,
            event_id=row.event_id,
            actor=row.actor,
            etag=row.etag,
            correlation_id=row.correlation_id,
        )
