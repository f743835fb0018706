"""SQLAlchemySnapshotStore — versioned aggregate snapshots."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ...ports.snapshots import ISnapshotStore, Snapshot
from .models import SnapshotModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


class SQLAlchemySnapshotStore(ISnapshotStore):
    """Stores every snapshot; a second snapshot at the same version is ignored."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        model = SnapshotModel(
            aggregate_id=snapshot.aggregate_id,
            aggregate_type_name=snapshot.aggregate_type_name,
            version=snapshot.version,
            state=snapshot.state,
            etags=sorted(snapshot.etags),
            created_at=snapshot.created_at,
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(model)
        except IntegrityError:
            logger.debug(
                "Snapshot of %s at version %d already exists",
                snapshot.aggregate_id,
                snapshot.version,
            )

    async def get_latest_snapshot(
        self, aggregate_id: str, max_version: int | None = None
    ) -> Snapshot | None:
        stmt = select(SnapshotModel).where(SnapshotModel.aggregate_id == aggregate_id)
        if max_version is not None:
            stmt = stmt.where(SnapshotModel.version <= max_version)
        stmt = stmt.order_by(SnapshotModel.version.desc()).limit(1)
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return Snapshot(
            aggregate_id=row.aggregate_id,
            version=row.version,
            aggregate_type_name=row.aggregate_type_name,
            state=dict(row.state),
            etags=frozenset(row.etags or ()),
            created_at=row.created_at,
        )
