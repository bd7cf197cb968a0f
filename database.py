import logging
from typing import AsyncIterator

from sqlmodel import SQLModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import config
import models  # noqa: F401  registers the tables on SQLModel.metadata

logger = logging.getLogger(__name__)

# Range exclusion on PostgreSQL: two rows for one room may not share any instant.
# '[)' keeps back-to-back bookings legal.
_EXCLUSION_STATEMENTS = (
    "CREATE EXTENSION IF NOT EXISTS btree_gist",
    """
    DO $$
    BEGIN
        IF NOT EXISTS (SELECT 1 FROM pg_constraint WHERE conname = 'no_room_overlap') THEN
            ALTER TABLE bookings ADD CONSTRAINT no_room_overlap
                EXCLUDE USING gist (room_id WITH =, tsrange(start_time, end_time, '[)') WITH &&);
        END IF;
    END $$;
    """,
)


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    return create_async_engine(url, echo=echo, future=True)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(config.DATABASE_URL, echo=config.DB_ECHO)
async_session = build_session_factory(engine)


async def _add_overlap_exclusion(conn: AsyncConnection) -> None:
    for statement in _EXCLUSION_STATEMENTS:
        await conn.execute(text(statement))
    logger.info("PostgreSQL overlap exclusion constraint is in place")


async def init_db(bind: AsyncEngine = None):
    bind = bind or engine
    async with bind.begin() as conn:
        # This creates the tables if they don't exist
        await conn.run_sync(SQLModel.metadata.create_all)
        if conn.dialect.name == "postgresql":
            await _add_overlap_exclusion(conn)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session
