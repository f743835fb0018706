"""SQLAlchemyScheduledCommandStore — durable scheduled commands."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError

from ...exceptions import SequenceConflictError
from ...ports.scheduling import (
    DeliveryPrecondition,
    IScheduledCommandStore,
    ScheduledCommand,
)
from .models import ScheduledCommandModel

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from ...ports.scheduling import CommandSelector

logger = logging.getLogger(__name__)

_M = ScheduledCommandModel


def _unresolved(aggregate_id: str, sequence_number: int) -> list[Any]:
    return [
        _M.aggregate_id == aggregate_id,
        _M.sequence_number == sequence_number,
        _M.applied_time.is_(None),
        _M.final_attempt_time.is_(None),
    ]


class SQLAlchemyScheduledCommandStore(IScheduledCommandStore):
    """
    Scheduled-command store backed by ``chronicle_scheduled_commands``.

    Terminal transitions are single ``UPDATE ... WHERE applied_time IS NULL
    AND final_attempt_time IS NULL`` statements; the affected row count tells
    the caller whether it won against a concurrent worker.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, record: ScheduledCommand) -> None:
        try:
            async with self._session_factory() as session, session.begin():
                session.add(self._to_model(record))
        except IntegrityError as e:
            raise SequenceConflictError(
                f"Sequence number {record.sequence_number} is already reserved "
                f"for {record.aggregate_type} {record.aggregate_id!r}"
            ) from e

    async def get(
        self, aggregate_id: str, sequence_number: int
    ) -> ScheduledCommand | None:
        async with self._session_factory() as session:
            row = await session.get(_M, (aggregate_id, sequence_number))
            return self._to_record(row) if row is not None else None

    async def query(self, selector: CommandSelector) -> list[ScheduledCommand]:
        stmt = select(_M).where(
            _M.applied_time.is_(None), _M.final_attempt_time.is_(None)
        )
        if selector.aggregate_id is not None:
            stmt = stmt.where(_M.aggregate_id == selector.aggregate_id)
        if selector.aggregate_type is not None:
            stmt = stmt.where(_M.aggregate_type == selector.aggregate_type)
        if selector.due_before is not None:
            stmt = stmt.where(
                or_(_M.due_time.is_(None), _M.due_time <= selector.due_before)
            )
        # Records without a due time sort first on every backend.
        stmt = stmt.order_by(
            _M.due_time.is_not(None), _M.due_time, _M.sequence_number
        )
        if selector.limit is not None:
            stmt = stmt.limit(selector.limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [self._to_record(row) for row in result.scalars().all()]

    async def highest_sequence_number(self, aggregate_id: str) -> int:
        stmt = select(func.max(_M.sequence_number)).where(
            _M.aggregate_id == aggregate_id
        )
        async with self._session_factory() as session:
            highest = (await session.execute(stmt)).scalar()
        return int(highest or 0)

    async def record_attempt(
        self,
        aggregate_id: str,
        sequence_number: int,
        *,
        error: str,
        next_due_time: datetime | None = None,
    ) -> ScheduledCommand | None:
        values: dict[str, Any] = {"attempts": _M.attempts + 1, "last_error": error}
        if next_due_time is not None:
            values["due_time"] = next_due_time
        stmt = (
            update(_M)
            .where(*_unresolved(aggregate_id, sequence_number))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
            if result.rowcount != 1:
                return None
            row = await session.get(_M, (aggregate_id, sequence_number))
            return self._to_record(row) if row is not None else None

    async def mark_applied(
        self, aggregate_id: str, sequence_number: int, applied_time: datetime
    ) -> bool:
        return await self._resolve(
            aggregate_id,
            sequence_number,
            applied_time=applied_time,
            attempts=_M.attempts + 1,
        )

    async def mark_failed(
        self,
        aggregate_id: str,
        sequence_number: int,
        final_attempt_time: datetime,
        error: str,
    ) -> bool:
        return await self._resolve(
            aggregate_id,
            sequence_number,
            final_attempt_time=final_attempt_time,
            last_error=error,
        )

    async def _resolve(
        self, aggregate_id: str, sequence_number: int, **values: Any
    ) -> bool:
        stmt = (
            update(_M)
            .where(*_unresolved(aggregate_id, sequence_number))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
            won = result.rowcount == 1
        if not won:
            logger.debug(
                "Scheduled command %s #%d was already resolved",
                aggregate_id,
                sequence_number,
            )
        return won

    async def find_resolved(
        self, aggregate_id: str, sequence_number: int
    ) -> ScheduledCommand | None:
        stmt = select(_M).where(
            _M.aggregate_id == aggregate_id,
            _M.sequence_number == sequence_number,
            or_(_M.applied_time.is_not(None), _M.final_attempt_time.is_not(None)),
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return self._to_record(row) if row is not None else None

    @staticmethod
    def _to_model(record: ScheduledCommand) -> ScheduledCommandModel:
        precondition = record.delivery_precondition
        return ScheduledCommandModel(
            aggregate_id=record.aggregate_id,
            sequence_number=record.sequence_number,
            aggregate_type=record.aggregate_type,
            command_name=record.command_name,
            command_body=record.command_body,
            due_time=record.due_time,
            precondition_aggregate_id=precondition.aggregate_id
            if precondition
            else None,
            precondition_sequence_number=precondition.sequence_number
            if precondition
            else None,
            applied_time=record.applied_time,
            final_attempt_time=record.final_attempt_time,
            attempts=record.attempts,
            last_error=record.last_error,
            created_time=record.created_time,
            correlation_id=record.correlation_id,
        )

    @staticmethod
    def _to_record(row: ScheduledCommandModel) -> ScheduledCommand:
        precondition = None
        if (
            row.precondition_aggregate_id is not None
            and row.precondition_sequence_number is not None
        ):
            precondition = DeliveryPrecondition(
                aggregate_id=row.precondition_aggregate_id,
                sequence_number=row.precondition_sequence_number,
            )
        return ScheduledCommand(
            aggregate_id=row.aggregate_id,
            aggregate_type=row.aggregate_type,
            sequence_number=row.sequence_number,
            command_name=row.command_name,
            command_body=dict(row.command_body or {}),
            due_time=row.due_time,
            delivery_precondition=precondition,
            applied_time=row.applied_time,
            final_attempt_time=row.final_attempt_time,
            attempts=row.attempts,
            last_error=row.last_error,
            created_time=row.created_time,
            correlation_id=row.correlation_id,
        )
