"""SQLAlchemy (async) adapters for the event store, snapshots and scheduled commands.

Usage::

    engine = create_async_engine("postgresql+asyncpg://...")
    await create_schema(engine)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    event_store = SQLAlchemyEventStore(session_factory)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .event_store import SQLAlchemyEventStore
from .models import Base, ScheduledCommandModel, SnapshotModel, StoredEventModel
from .scheduling import SQLAlchemyScheduledCommandStore
from .snapshot_store import SQLAlchemySnapshotStore
from .types import JSONType, UTCDateTime

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


async def create_schema(engine: AsyncEngine) -> None:
    """Create the chronicle tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "Base",
    "JSONType",
    "SQLAlchemyEventStore",
    "SQLAlchemyScheduledCommandStore",
    "SQLAlchemySnapshotStore",
    "ScheduledCommandModel",
    "SnapshotModel",
    "StoredEventModel",
    "UTCDateTime",
    "create_schema",
]
