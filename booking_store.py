import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Union

from sqlmodel import select
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import BookingError
from models import Booking
from schemas import BookingCreate

logger = logging.getLogger(__name__)


class RoomLocks:
    """One asyncio.Lock per room id, kept only while someone holds or awaits it."""

    def __init__(self) -> None:
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, room_id: int) -> AsyncIterator[None]:
        # No await between lookup and registration, so this is safe on one event loop
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        self._users[room_id] = self._users.get(room_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[room_id] -= 1
            if not self._users[room_id]:
                del self._users[room_id]
                del self._locks[room_id]


class BookingStore:
    """Authoritative set of accepted bookings."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, draft: BookingCreate, created_at: datetime) -> Union[Booking, BookingError]:
        """Persist an already validated draft.

        Returns a conflict_on_commit error instead of raising when the
        database refuses the row (exclusion constraint on PostgreSQL).
        """
        booking = Booking(
            room_id=draft.room_id,
            title=draft.title,
            start_time=draft.start_time,
            end_time=draft.end_time,
            created_by=draft.created_by,
            created_at=created_at,
            number_of_participants=draft.number_of_participants,
        )
        try:
            self.session.add(booking)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.warning(
                "Commit rejected for room %s [%s, %s)", draft.room_id, draft.start_time, draft.end_time
            )
            return BookingError.commit_conflict(draft.room_id)

        await self.session.refresh(booking)
        return booking

    async def get(self, booking_id: int) -> Optional[Booking]:
        return await self.session.get(Booking, booking_id)

    async def delete(self, booking_id: int) -> bool:
        booking = await self.get(booking_id)
        if booking is None:
            return False
        await self.session.delete(booking)
        await self.session.commit()
        return True

    async def list_all(self) -> List[Booking]:
        statement = select(Booking).order_by(Booking.start_time, Booking.id)
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def list_for_room(self, room_id: int) -> List[Booking]:
        statement = (
            select(Booking)
            .where(Booking.room_id == room_id)
            .order_by(Booking.start_time, Booking.id)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def exists_future_for_room(self, room_id: int, now: datetime) -> bool:
        statement = (
            select(func.count())
            .select_from(Booking)
            .where(Booking.room_id == room_id, Booking.start_time > now)
        )
        result = await self.session.execute(statement)
        return result.scalar_one() > 0

    async def delete_for_room(self, room_id: int) -> int:
        """Stage removal of every booking of a room. The caller commits."""
        result = await self.session.execute(delete(Booking).where(Booking.room_id == room_id))
        return result.rowcount or 0
